"""Exception types raised at the collaborator boundaries."""

from __future__ import annotations


class OapChatError(Exception):
    """Base class for all application errors."""


class GenerationError(OapChatError):
    """The generation model was unreachable or returned something unusable."""


class PersistenceError(OapChatError):
    """A persistence gateway call failed as a whole."""


class ToolProviderError(OapChatError):
    """The tool provider could not connect, list, or call tools."""


class NotConnectedError(ToolProviderError):
    """A tool was called while the provider was not connected."""


class UnknownToolError(ToolProviderError):
    """A tool was called that the provider does not expose."""


class SessionBusyError(OapChatError):
    """A message was sent while the previous one was still being processed."""
