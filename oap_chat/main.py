"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging

from oap_chat.commands import HELP_TEXT, CommandDispatcher, parse_command
from oap_chat.config import Settings, load_settings, load_system_instruction
from oap_chat.errors import SessionBusyError
from oap_chat.llm.gemini import GeminiClient
from oap_chat.orchestrator import ToolOrchestrator
from oap_chat.persistence.base import PersistenceGateway
from oap_chat.persistence.http_gateway import HttpPersistenceGateway
from oap_chat.persistence.sqlite_gateway import SqlitePersistenceGateway
from oap_chat.session import ConversationSession
from oap_chat.tools.mcp_provider import McpToolProvider

LOGGER = logging.getLogger(__name__)

_QUIT_COMMANDS = {"quit", "exit"}


def build_gateway(settings: Settings) -> PersistenceGateway:
    """Pick the persistence backend named by PERSISTENCE_BACKEND."""

    if settings.persistence_backend == "sqlite":
        gateway = SqlitePersistenceGateway(settings.database_path)
        gateway.initialize()
        return gateway
    return HttpPersistenceGateway(settings.backend_url, timeout_seconds=settings.request_timeout_seconds)


async def run() -> None:
    """Initialize app layers and start processing loop."""

    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())

    tool_provider = McpToolProvider(settings.mcp_server_url, timeout_seconds=settings.request_timeout_seconds)
    orchestrator = ToolOrchestrator(
        generation_client=GeminiClient(settings),
        tool_provider=tool_provider,
        system_instruction=load_system_instruction(settings),
        max_iterations=settings.max_tool_iterations,
    )
    session = ConversationSession(
        gateway=build_gateway(settings),
        orchestrator=orchestrator,
        tool_provider=tool_provider,
        title_length=settings.chat_title_length,
    )
    dispatcher = CommandDispatcher(session)

    await session.refresh_chats()
    print(HELP_TEXT)

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            text = line.strip()
            if not text:
                continue

            parsed = parse_command(text)
            if parsed is not None and parsed[0] in _QUIT_COMMANDS:
                break
            reply = await dispatcher.dispatch(text)
            if reply is not None:
                print(reply)
                continue

            try:
                message = await session.send_user_message(text)
            except SessionBusyError:
                print("Still working on the previous message.")
                continue
            print(f"\n{message.text}\n")
    except asyncio.CancelledError:
        raise
    finally:
        await tool_provider.disconnect()
        LOGGER.info("Chat shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
