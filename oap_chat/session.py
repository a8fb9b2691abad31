"""Conversation state for the active chat."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from oap_chat.errors import SessionBusyError, ToolProviderError
from oap_chat.models import ChatSession, Message, OrchestrationResult, ToolMode, provisional_id
from oap_chat.orchestrator import FALLBACK_TEXT, ToolOrchestrator
from oap_chat.persistence.base import PersistenceGateway
from oap_chat.tools.base import ConnectionState, ToolProvider

LOGGER = logging.getLogger(__name__)

EMPTY_REPLY_TEXT = "No response text"


class SessionGuard:
    """One-shot marker for the chat this session just created.

    A chat created locally already has the correct messages in memory; the
    first reload request for it is skipped so it cannot wipe them before
    persistence has caught up.
    """

    def __init__(self) -> None:
        self._chat_id: str | None = None

    @property
    def armed(self) -> str | None:
        return self._chat_id

    def arm(self, chat_id: str) -> None:
        self._chat_id = chat_id

    def disarm(self) -> None:
        self._chat_id = None

    def consume_if_matches(self, chat_id: str) -> bool:
        """Return True (and disarm) if ``chat_id`` is the marked chat."""

        if self._chat_id is not None and self._chat_id == chat_id:
            self._chat_id = None
            return True
        return False


class ConversationSession:
    """Owns the message log and chat identity of the active conversation.

    The log is only ever mutated here. Every user message gets exactly one
    model message after it, even when something fails on the way.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        orchestrator: ToolOrchestrator,
        tool_provider: ToolProvider,
        guard: SessionGuard | None = None,
        title_length: int = 30,
        tool_mode: ToolMode = ToolMode.DISABLED,
    ) -> None:
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._tool_provider = tool_provider
        self._guard = guard or SessionGuard()
        self._title_length = title_length
        self._tool_mode = tool_mode
        self._chat = ChatSession(id=None, title=None)
        self._messages: list[Message] = []
        self._chats: list[ChatSession] = []
        self._send_lock = asyncio.Lock()

    @property
    def chat(self) -> ChatSession:
        return self._chat

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def chats(self) -> tuple[ChatSession, ...]:
        return tuple(self._chats)

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    @property
    def tool_mode(self) -> ToolMode:
        return self._tool_mode

    @property
    def tool_state(self) -> ConnectionState:
        return self._tool_provider.state

    @property
    def busy(self) -> bool:
        return self._send_lock.locked()

    async def send_user_message(self, text: str) -> Message:
        """Append ``text`` as a user message and produce the model's reply.

        Returns the model message that ends this exchange (possibly a
        synthetic error message).

        Raises:
            ValueError: if ``text`` is blank.
            SessionBusyError: if a previous send has not finished.
        """
        if not text.strip():
            raise ValueError("Cannot send an empty message")
        if self._send_lock.locked():
            raise SessionBusyError("A message is already being processed")

        async with self._send_lock:
            history = list(self._messages)
            user_message = Message(id=provisional_id(), role="user", text=text)
            self._messages.append(user_message)

            try:
                chat_id = await self._ensure_chat(text, user_message.id)
                stored = await self._gateway.add_message(chat_id, "user", text)
                self._replace_message(user_message.id, stored.id)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to save user message")
                error_reply = Message(id=provisional_id(), role="model", text=FALLBACK_TEXT)
                if self._holds(user_message.id):
                    self._append(error_reply)
                return error_reply

            try:
                result = await self._orchestrator.run(history, text, self._tool_mode)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Orchestrator raised")
                result = OrchestrationResult(final_text=FALLBACK_TEXT, error=str(exc))
            if result.error:
                LOGGER.error("Orchestration returned fallback: %s", result.error)
            reply = Message(id=provisional_id(), role="model", text=result.final_text or EMPTY_REPLY_TEXT)

            if self._chat.id == chat_id:
                self._append(reply)
            else:
                LOGGER.info("Chat %s is no longer active; reply is only persisted", chat_id)

            try:
                stored = await self._gateway.add_message(chat_id, "model", reply.text)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to save model message for chat %s", chat_id)
                return reply
            if self._chat.id == chat_id:
                self._replace_message(reply.id, stored.id)
            return dataclasses.replace(reply, id=stored.id)

    async def select_chat(self, chat_id: str) -> bool:
        """Make ``chat_id`` the active chat, reloading its messages.

        Returns False when the reload was skipped because this session just
        created the chat and its in-memory log is authoritative.
        """
        if self._guard.consume_if_matches(chat_id):
            LOGGER.debug("Skipping reload of freshly created chat %s", chat_id)
            return False
        # Leaving the freshly created chat invalidates its optimistic state.
        self._guard.disarm()

        known = next((chat for chat in self._chats if chat.id == chat_id), None)
        self._chat = known or ChatSession(id=chat_id, title=None)
        self._messages = []
        try:
            detail = await self._gateway.get_chat(chat_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to load messages for chat %s", chat_id)
            return True
        if self._chat.id == chat_id:
            self._chat = detail.chat
            self._messages = list(detail.messages)
        return True

    def new_chat(self) -> None:
        """Start over with an unsaved chat and an empty log."""

        self._guard.disarm()
        self._chat = ChatSession(id=None, title=None)
        self._messages = []

    async def refresh_chats(self) -> list[ChatSession]:
        try:
            self._chats = await self._gateway.list_chats()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to load chats")
        return list(self._chats)

    async def delete_chat(self, chat_id: str) -> bool:
        try:
            await self._gateway.delete_chat(chat_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to delete chat %s", chat_id)
            return False
        self._chats = [chat for chat in self._chats if chat.id != chat_id]
        if self._chat.id == chat_id:
            self.new_chat()
        return True

    async def rename_chat(self, chat_id: str, title: str) -> bool:
        try:
            renamed = await self._gateway.update_chat_title(chat_id, title)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to rename chat %s", chat_id)
            return False
        self._chats = [renamed if chat.id == chat_id else chat for chat in self._chats]
        if self._chat.id == chat_id:
            self._chat = renamed
        return True

    async def set_tool_mode(self, mode: ToolMode) -> None:
        """Switch tool mode; entering ENABLED (re)connects an idle or failed provider."""

        self._tool_mode = mode
        if mode is not ToolMode.ENABLED:
            return
        if self._tool_provider.state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            try:
                await self._tool_provider.connect()
            except ToolProviderError as exc:
                LOGGER.warning("Tool provider unavailable: %s", exc)

    async def _ensure_chat(self, text: str, local_id: str) -> str:
        if self._chat.id is not None:
            return self._chat.id

        chat = await self._gateway.create_chat(self._title_for(text))
        if chat.id is None:
            raise ValueError("Gateway created a chat without an id")
        self._chats.insert(0, chat)
        # Only adopt the chat if the user is still looking at the unsaved log.
        if self._chat.id is None and self._holds(local_id):
            self._chat = chat
            self._guard.arm(chat.id)
            LOGGER.info("Created chat %s", chat.id)
        else:
            LOGGER.info("Created chat %s after the active chat changed; not adopting it", chat.id)
        return chat.id

    def _title_for(self, text: str) -> str:
        text = text.strip()
        if len(text) <= self._title_length:
            return text
        return text[: self._title_length].rstrip() + "..."

    def _holds(self, message_id: str) -> bool:
        return any(message.id == message_id for message in self._messages)

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def _replace_message(self, local_id: str, stored_id: str) -> None:
        for index, message in enumerate(self._messages):
            if message.id == local_id:
                self._messages[index] = dataclasses.replace(message, id=stored_id)
                return
