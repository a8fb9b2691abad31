"""Tests for McpToolProvider."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mcp import types

from oap_chat.errors import NotConnectedError, ToolProviderError, UnknownToolError
from oap_chat.models import ErrorOutcome, JsonOutcome, TextOutcome
from oap_chat.tools.base import ConnectionState
from oap_chat.tools.mcp_provider import McpToolProvider, to_outcome

SERVER_URL = "http://localhost:3000/sse"


def _async_cm(value):  # noqa: ANN001, ANN202
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=value)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


def _session(tools=None, initialize_error=None):  # noqa: ANN001, ANN202
    session = _async_cm(None)
    session.__aenter__ = AsyncMock(return_value=session)
    session.initialize = AsyncMock(side_effect=initialize_error)
    session.list_tools = AsyncMock(
        return_value=types.ListToolsResult(
            tools=tools
            if tools is not None
            else [
                types.Tool(
                    name="start_new_application",
                    description="Start an application",
                    inputSchema={"type": "object", "properties": {"oap": {"type": "string"}}},
                )
            ]
        )
    )
    session.call_tool = AsyncMock(
        return_value=types.CallToolResult(content=[types.TextContent(type="text", text='{"ok": true}')])
    )
    return session


def _patched(session):  # noqa: ANN001, ANN202
    transport = _async_cm(("read-stream", "write-stream"))
    return (
        patch("oap_chat.tools.mcp_provider.sse_client", return_value=transport),
        patch("oap_chat.tools.mcp_provider.ClientSession", return_value=session),
        transport,
    )


@pytest.mark.asyncio
async def test_connect_transitions_to_connected():
    session = _session()
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)
    assert provider.state is ConnectionState.DISCONNECTED

    with sse_patch as sse_client, session_patch as client_session:
        await provider.connect()

    assert provider.state is ConnectionState.CONNECTED
    sse_client.assert_called_once_with(SERVER_URL, timeout=30.0)
    assert client_session.call_args.args == ("read-stream", "write-stream")
    session.initialize.assert_awaited_once()


@pytest.mark.asyncio
async def test_connect_is_idempotent_when_connected():
    session = _session()
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch as sse_client, session_patch:
        await provider.connect()
        await provider.connect()

    sse_client.assert_called_once()


@pytest.mark.asyncio
async def test_failed_connect_sets_error_and_raises():
    session = _session(initialize_error=ConnectionRefusedError("refused"))
    sse_patch, session_patch, transport = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        with pytest.raises(ToolProviderError, match="refused"):
            await provider.connect()

    assert provider.state is ConnectionState.ERROR
    transport.__aexit__.assert_awaited()


@pytest.mark.asyncio
async def test_list_tools_connects_implicitly():
    session = _session()
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        tools = await provider.list_tools()

    assert provider.state is ConnectionState.CONNECTED
    [tool] = tools
    assert tool.name == "start_new_application"
    assert tool.description == "Start an application"
    assert tool.parameter_schema["properties"] == {"oap": {"type": "string"}}


@pytest.mark.asyncio
async def test_list_tools_returns_empty_when_connect_fails():
    session = _session(initialize_error=OSError("down"))
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        assert await provider.list_tools() == []

    assert provider.state is ConnectionState.ERROR


@pytest.mark.asyncio
async def test_list_tools_in_error_state_does_not_reconnect():
    session = _session(initialize_error=OSError("down"))
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch as sse_client, session_patch:
        await provider.list_tools()
        assert await provider.list_tools() == []

    sse_client.assert_called_once()


@pytest.mark.asyncio
async def test_list_tools_failure_while_connected_raises():
    session = _session()
    session.list_tools = AsyncMock(side_effect=RuntimeError("protocol error"))
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        await provider.connect()
        with pytest.raises(ToolProviderError):
            await provider.list_tools()


@pytest.mark.asyncio
async def test_call_tool_requires_connection():
    provider = McpToolProvider(SERVER_URL)

    with pytest.raises(NotConnectedError):
        await provider.call_tool("start_new_application", {"oap": "X"})


@pytest.mark.asyncio
async def test_call_tool_returns_text_outcome():
    session = _session()
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        await provider.list_tools()
        outcome = await provider.call_tool("start_new_application", {"oap": "X"})

    assert outcome == TextOutcome('{"ok": true}')
    session.call_tool.assert_awaited_once_with("start_new_application", {"oap": "X"})


@pytest.mark.asyncio
async def test_call_unknown_tool_raises():
    session = _session()
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        await provider.list_tools()
        with pytest.raises(UnknownToolError):
            await provider.call_tool("delete_everything", {})

    session.call_tool.assert_not_called()


@pytest.mark.asyncio
async def test_call_tool_wraps_session_errors():
    session = _session()
    session.call_tool = AsyncMock(side_effect=RuntimeError("server crashed"))
    sse_patch, session_patch, _ = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        await provider.connect()
        with pytest.raises(ToolProviderError, match="server crashed"):
            await provider.call_tool("start_new_application", {})


@pytest.mark.asyncio
async def test_disconnect_returns_to_disconnected():
    session = _session()
    sse_patch, session_patch, transport = _patched(session)
    provider = McpToolProvider(SERVER_URL)

    with sse_patch, session_patch:
        await provider.connect()
        await provider.disconnect()

    assert provider.state is ConnectionState.DISCONNECTED
    session.__aexit__.assert_awaited_once()
    transport.__aexit__.assert_awaited_once()
    with pytest.raises(NotConnectedError):
        await provider.call_tool("start_new_application", {})


class TestToOutcome:
    def test_error_result(self):
        result = types.CallToolResult(content=[types.TextContent(type="text", text="invalid oap")], isError=True)
        assert to_outcome(result) == ErrorOutcome("invalid oap")

    def test_structured_result(self):
        result = types.CallToolResult(content=[], structuredContent={"applicationId": "A-1"})
        assert to_outcome(result) == JsonOutcome({"applicationId": "A-1"})

    def test_unstructured_non_text_result(self):
        result = types.CallToolResult(
            content=[types.ImageContent(type="image", data="aGk=", mimeType="image/png")]
        )
        outcome = to_outcome(result)
        assert isinstance(outcome, JsonOutcome)
        assert outcome.data["content"][0]["mimeType"] == "image/png"


def test_installed_sdk_uses_the_field_names_the_provider_reads():
    assert "inputSchema" in types.Tool.model_fields
    assert {"isError", "structuredContent"} <= set(types.CallToolResult.model_fields)
