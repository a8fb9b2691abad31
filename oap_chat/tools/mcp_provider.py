"""MCP implementation of ToolProvider."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, types
from mcp.client.sse import sse_client

from oap_chat.errors import NotConnectedError, ToolProviderError, UnknownToolError
from oap_chat.models import ErrorOutcome, JsonOutcome, TextOutcome, ToolDescriptor, ToolOutcome
from oap_chat.tools.base import ConnectionState, ToolProvider

LOGGER = logging.getLogger(__name__)


class McpToolProvider(ToolProvider):
    """Tool provider backed by one MCP server reached over SSE.

    The connection is owned by the instance; whoever builds the provider
    decides when it connects and disconnects.
    """

    def __init__(
        self,
        server_url: str,
        client_name: str = "oap-chat",
        client_version: str = "0.1.0",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._server_url = server_url
        self._client_info = types.Implementation(name=client_name, version=client_version)
        self._timeout_seconds = timeout_seconds
        self._state = ConnectionState.DISCONNECTED
        self._exit_stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._known_tools: set[str] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return

        LOGGER.info("Connecting to MCP server at %s", self._server_url)
        self._state = ConnectionState.CONNECTING
        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(
                sse_client(self._server_url, timeout=self._timeout_seconds)
            )
            session = await stack.enter_async_context(
                ClientSession(read_stream, write_stream, client_info=self._client_info)
            )
            await session.initialize()
        except Exception as exc:  # noqa: BLE001
            self._state = ConnectionState.ERROR
            await _close_quietly(stack)
            LOGGER.error("Failed to connect to MCP server: %s", exc)
            raise ToolProviderError(f"Failed to connect to MCP server at {self._server_url}: {exc}") from exc

        self._exit_stack = stack
        self._session = session
        self._known_tools = None
        self._state = ConnectionState.CONNECTED
        LOGGER.info("Connected to MCP server")

    async def list_tools(self) -> list[ToolDescriptor]:
        if self._state is ConnectionState.DISCONNECTED:
            try:
                await self.connect()
            except ToolProviderError:
                return []
        if self._state is not ConnectionState.CONNECTED or self._session is None:
            return []

        try:
            result = await self._session.list_tools()
        except Exception as exc:  # noqa: BLE001
            raise ToolProviderError(f"Failed to list MCP tools: {exc}") from exc

        descriptors = [
            ToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                parameter_schema=dict(tool.inputSchema or {}),
            )
            for tool in result.tools
        ]
        self._known_tools = {descriptor.name for descriptor in descriptors}
        return descriptors

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutcome:
        if self._state is not ConnectionState.CONNECTED or self._session is None:
            raise NotConnectedError("Not connected to MCP Server")
        if self._known_tools is not None and name not in self._known_tools:
            raise UnknownToolError(f"Unknown tool: {name}")

        LOGGER.info("Calling tool %s", name)
        try:
            result = await self._session.call_tool(name, arguments)
        except Exception as exc:  # noqa: BLE001
            raise ToolProviderError(f"Tool {name} failed: {exc}") from exc
        return to_outcome(result)

    async def disconnect(self) -> None:
        stack, self._exit_stack = self._exit_stack, None
        self._session = None
        self._known_tools = None
        self._state = ConnectionState.DISCONNECTED
        if stack is not None:
            await _close_quietly(stack)
            LOGGER.info("Disconnected from MCP server")


def to_outcome(result: types.CallToolResult) -> ToolOutcome:
    """Map an MCP tool result onto a tagged outcome."""

    text = _first_text(result.content)
    if result.isError:
        return ErrorOutcome(text or "Tool reported an error")
    if text is not None:
        return TextOutcome(text)
    if result.structuredContent is not None:
        return JsonOutcome(result.structuredContent)
    return JsonOutcome(result.model_dump(mode="json", exclude_none=True))


def _first_text(content: list[Any]) -> str | None:
    if content and isinstance(content[0], types.TextContent):
        return content[0].text
    return None


async def _close_quietly(stack: AsyncExitStack) -> None:
    try:
        await stack.aclose()
    except Exception:  # noqa: BLE001
        LOGGER.debug("Error while closing MCP connection", exc_info=True)
