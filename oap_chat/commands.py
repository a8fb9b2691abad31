"""Command dispatcher for @-prefixed console input.

Commands manage chats and tool mode without involving the model.
An unrecognised @command returns None, letting it fall through as a message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from oap_chat.models import ToolMode

if TYPE_CHECKING:
    from oap_chat.session import ConversationSession

LOGGER = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  @new                      start a new chat
  @chats                    list saved chats
  @open <id>                open a saved chat
  @delete <id>              delete a saved chat
  @rename <id> <title>      rename a saved chat
  @mode tools|normal        enable or disable MCP tools
  @status                   show chat and tool connection status
  @quit                     exit"""

_MODE_ALIASES = {
    "tools": ToolMode.ENABLED,
    "mcp": ToolMode.ENABLED,
    "on": ToolMode.ENABLED,
    "normal": ToolMode.DISABLED,
    "off": ToolMode.DISABLED,
}


def parse_command(text: str) -> tuple[str, list[str]] | None:
    """Return ``(keyword, args)`` for a line like ``@open c1``, else None.

    The keyword is lowercased; a bare ``@`` is not a command.
    """
    head, *args = text.split() or [""]
    if len(head) < 2 or not head.startswith("@"):
        return None
    return head[1:].lower(), args


def format_transcript(session: ConversationSession) -> str:
    if not session.messages:
        return "(no messages)"
    return "\n\n".join(f"{m.role}: {m.text}" for m in session.messages)


class CommandDispatcher:
    """Routes @-prefixed lines to session operations.

    Returns None for unrecognised commands so the caller can fall through.
    """

    def __init__(self, session: ConversationSession) -> None:
        self._session = session

    async def dispatch(self, text: str) -> str | None:
        """Dispatch a line to a command handler.

        Returns:
            A reply string for recognised commands, or None for unknown ones.
        """
        parsed = parse_command(text)
        if parsed is None:
            return None
        command, args = parsed
        LOGGER.info("Command dispatch: command=%r args=%r", command, args)
        if command == "help":
            return HELP_TEXT
        if command == "new":
            self._session.new_chat()
            return "Started a new chat."
        if command == "chats":
            return await self._handle_chats()
        if command == "open":
            return await self._handle_open(args)
        if command == "delete":
            return await self._handle_delete(args)
        if command == "rename":
            return await self._handle_rename(args)
        if command == "mode":
            return await self._handle_mode(args)
        if command == "status":
            return self._handle_status()
        return None

    async def _handle_chats(self) -> str:
        chats = await self._session.refresh_chats()
        if not chats:
            return "No saved chats yet."
        current = self._session.chat.id
        lines = [
            f"{'*' if chat.id == current else ' '} {chat.id}  {chat.title or 'New Chat'}"
            for chat in chats
        ]
        return "\n".join(lines)

    async def _handle_open(self, args: list[str]) -> str:
        if len(args) != 1:
            return "Usage: @open <id>"
        await self._session.select_chat(args[0])
        title = self._session.chat.title or "New Chat"
        return f"Opened {title}\n\n{format_transcript(self._session)}"

    async def _handle_delete(self, args: list[str]) -> str:
        if len(args) != 1:
            return "Usage: @delete <id>"
        if not await self._session.delete_chat(args[0]):
            return f"Could not delete chat {args[0]}."
        return f"Deleted chat {args[0]}."

    async def _handle_rename(self, args: list[str]) -> str:
        if len(args) < 2:
            return "Usage: @rename <id> <title>"
        chat_id, title = args[0], " ".join(args[1:])
        if not await self._session.rename_chat(chat_id, title):
            return f"Could not rename chat {chat_id}."
        return f"Renamed chat {chat_id} to {title!r}."

    async def _handle_mode(self, args: list[str]) -> str:
        mode = _MODE_ALIASES.get(args[0].lower()) if len(args) == 1 else None
        if mode is None:
            return "Usage: @mode tools|normal"
        await self._session.set_tool_mode(mode)
        if mode is ToolMode.DISABLED:
            return "Tools disabled."
        return f"Tools enabled (MCP {self._session.tool_state.value})."

    def _handle_status(self) -> str:
        chat = self._session.chat
        chat_line = f"Chat: {chat.id} ({chat.title or 'New Chat'})" if chat.id else "Chat: new (unsaved)"
        return (
            f"{chat_line}\n"
            f"Messages: {len(self._session.messages)}\n"
            f"Mode: {self._session.tool_mode.value}\n"
            f"MCP: {self._session.tool_state.value}"
        )
