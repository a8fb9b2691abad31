"""Tool provider contracts."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Any

from oap_chat.models import ToolDescriptor, ToolOutcome


class ConnectionState(str, enum.Enum):
    """Lifecycle of a tool provider connection.

    ``disconnected -> connecting -> connected``, or ``connecting -> error``.
    Nothing leaves ``error`` except an explicit ``connect()``.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ToolProvider(ABC):
    """Discovers and invokes named tools over a session-oriented connection."""

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        """Current connection state."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            ToolProviderError: if the connection could not be established.
        """

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """Return available tools, or an empty list if the provider is unavailable."""

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutcome:
        """Invoke a tool.

        Raises:
            NotConnectedError: when the provider is not connected.
            UnknownToolError: when ``name`` is not an available tool.
            ToolProviderError: when the call itself fails.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection, if any."""
