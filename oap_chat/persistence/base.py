"""Persistence gateway interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from oap_chat.models import ChatDetail, ChatSession, Message, Role


class PersistenceGateway(ABC):
    """Durable CRUD for chats and their messages.

    Every method either succeeds completely or raises PersistenceError.
    """

    @abstractmethod
    async def list_chats(self) -> list[ChatSession]:
        """Return saved chats, most recently active first."""

    @abstractmethod
    async def get_chat(self, chat_id: str) -> ChatDetail:
        """Return a chat with its messages, oldest first."""

    @abstractmethod
    async def create_chat(self, title: str | None = None) -> ChatSession:
        """Create an empty chat."""

    @abstractmethod
    async def add_message(self, chat_id: str, role: Role, text: str) -> Message:
        """Append a message to a chat and return it with its persisted id."""

    @abstractmethod
    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and its messages."""

    @abstractmethod
    async def update_chat_title(self, chat_id: str, title: str) -> ChatSession:
        """Rename a chat."""
