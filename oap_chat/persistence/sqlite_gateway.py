"""SQLite implementation of PersistenceGateway."""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from oap_chat.errors import PersistenceError
from oap_chat.models import ChatDetail, ChatSession, Message, Role
from oap_chat.persistence.base import PersistenceGateway

SCHEMA_VERSION = 1


class SqlitePersistenceGateway(PersistenceGateway):
    """Local SQLite store with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and maps driver errors."""

        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(self._path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            if conn is not None:
                conn.rollback()
            raise PersistenceError(f"SQLite error on {self._path}: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def initialize(self) -> None:
        """Create the chat tables on a fresh file, or check an existing file's version."""

        with self._connect() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version == 0:
                self._create_schema(conn)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            elif version != SCHEMA_VERSION:
                raise RuntimeError(f"Unsupported schema version {version} (expected {SCHEMA_VERSION})")

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                title TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'model')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(chat_id) REFERENCES chats(id)
            );

            CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, id);
            """
        )

    # Each coroutine hands its blocking sqlite3 work to a worker thread.

    async def list_chats(self) -> list[ChatSession]:
        return await asyncio.to_thread(self._list_chats)

    async def get_chat(self, chat_id: str) -> ChatDetail:
        return await asyncio.to_thread(self._get_chat, chat_id)

    async def create_chat(self, title: str | None = None) -> ChatSession:
        return await asyncio.to_thread(self._create_chat, title)

    async def add_message(self, chat_id: str, role: Role, text: str) -> Message:
        return await asyncio.to_thread(self._add_message, chat_id, role, text)

    async def delete_chat(self, chat_id: str) -> None:
        await asyncio.to_thread(self._delete_chat, chat_id)

    async def update_chat_title(self, chat_id: str, title: str) -> ChatSession:
        return await asyncio.to_thread(self._update_chat_title, chat_id, title)

    def _list_chats(self) -> list[ChatSession]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, title, created_at, updated_at FROM chats ORDER BY updated_at DESC, rowid DESC"
            ).fetchall()
        return [_chat_from_row(row) for row in rows]

    def _get_chat(self, chat_id: str) -> ChatDetail:
        with self._connect() as conn:
            chat_row = self._require_chat(conn, chat_id)
            rows = conn.execute(
                "SELECT id, role, content, created_at FROM messages WHERE chat_id = ? ORDER BY id ASC",
                (chat_id,),
            ).fetchall()
        return ChatDetail(chat=_chat_from_row(chat_row), messages=[_message_from_row(row) for row in rows])

    def _create_chat(self, title: str | None) -> ChatSession:
        chat_id = uuid.uuid4().hex
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO chats(id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (chat_id, title, now, now),
            )
            row = self._require_chat(conn, chat_id)
        return _chat_from_row(row)

    def _add_message(self, chat_id: str, role: Role, text: str) -> Message:
        now = _utc_now_iso()
        with self._connect() as conn:
            self._require_chat(conn, chat_id)
            cur = conn.execute(
                "INSERT INTO messages(chat_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (chat_id, role, text, now),
            )
            conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (now, chat_id))
            message_id = int(cur.lastrowid)
        return Message(id=str(message_id), role=role, text=text, timestamp=datetime.fromisoformat(now))

    def _delete_chat(self, chat_id: str) -> None:
        with self._connect() as conn:
            self._require_chat(conn, chat_id)
            conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
            conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))

    def _update_chat_title(self, chat_id: str, title: str) -> ChatSession:
        with self._connect() as conn:
            self._require_chat(conn, chat_id)
            conn.execute(
                "UPDATE chats SET title = ?, updated_at = ? WHERE id = ?",
                (title, _utc_now_iso(), chat_id),
            )
            row = self._require_chat(conn, chat_id)
        return _chat_from_row(row)

    def _require_chat(self, conn: sqlite3.Connection, chat_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT id, title, created_at, updated_at FROM chats WHERE id = ?", (chat_id,)
        ).fetchone()
        if row is None:
            raise PersistenceError(f"Chat not found: {chat_id}")
        return row


def _chat_from_row(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        title=row["title"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _message_from_row(row: sqlite3.Row) -> Message:
    return Message(
        id=str(row["id"]),
        role=row["role"],
        text=row["content"],
        timestamp=datetime.fromisoformat(row["created_at"]),
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
