"""Core domain models used across layers."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

Role = Literal["user", "model"]
TurnRole = Literal["user", "model", "function"]


class ToolMode(str, enum.Enum):
    """Whether tool descriptors are attached to generation requests."""

    ENABLED = "enabled"
    DISABLED = "disabled"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def provisional_id() -> str:
    """Local id for a message that has not been persisted yet."""

    return f"local-{uuid.uuid4().hex}"


@dataclass(frozen=True, slots=True)
class Message:
    """One entry of the conversation log."""

    id: str
    role: Role
    text: str
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith("local-")


@dataclass(frozen=True, slots=True)
class ChatSession:
    """A persisted (or not yet persisted, when ``id`` is None) chat."""

    id: str | None
    title: str | None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @property
    def is_saved(self) -> bool:
        return self.id is not None


@dataclass(frozen=True, slots=True)
class ChatDetail:
    """A chat together with its stored messages, oldest first."""

    chat: ChatSession
    messages: list[Message] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class FunctionCallPart:
    name: str
    args: dict[str, Any]
    thought_signature: str | None = None


@dataclass(frozen=True, slots=True)
class FunctionResponsePart:
    name: str
    response: dict[str, Any]


Part = Union[TextPart, FunctionCallPart, FunctionResponsePart]


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """Unit of content sent to the generation model."""

    role: TurnRole
    parts: tuple[Part, ...]

    @classmethod
    def text(cls, role: TurnRole, text: str) -> ConversationTurn:
        return cls(role=role, parts=(TextPart(text),))

    @classmethod
    def from_message(cls, message: Message) -> ConversationTurn:
        return cls.text(message.role, message.text)


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Tool exposed by a tool provider."""

    name: str
    description: str
    parameter_schema: dict[str, Any]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool descriptor requires a name")
        if not isinstance(self.parameter_schema, dict):
            raise ValueError(f"Tool {self.name!r} has a non-object parameter schema")


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """Tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    thought_signature: str | None = None


@dataclass(frozen=True, slots=True)
class TextOutcome:
    text: str

    def to_response(self) -> dict[str, Any]:
        return {"content": self.text}


@dataclass(frozen=True, slots=True)
class JsonOutcome:
    data: Any

    def to_response(self) -> dict[str, Any]:
        return {"content": self.data}


@dataclass(frozen=True, slots=True)
class ErrorOutcome:
    message: str

    def to_response(self) -> dict[str, Any]:
        return {"error": self.message}


ToolOutcome = Union[TextOutcome, JsonOutcome, ErrorOutcome]


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    """Closure for exactly one ToolCallRequest."""

    name: str
    outcome: ToolOutcome

    @property
    def is_error(self) -> bool:
        return isinstance(self.outcome, ErrorOutcome)

    def to_part(self) -> FunctionResponsePart:
        return FunctionResponsePart(name=self.name, response={"name": self.name, **self.outcome.to_response()})


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    system_instruction: str
    history: list[ConversationTurn]
    tools: list[ToolDescriptor] | None = None


@dataclass(frozen=True, slots=True)
class GenerationResponse:
    """Result from a generation request."""

    text: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    parts: tuple[Part, ...] = ()
    finish_reason: str | None = None

    def as_turn(self) -> ConversationTurn:
        """The model turn to echo back, as it was returned."""

        if self.parts:
            return ConversationTurn(role="model", parts=self.parts)
        parts: list[Part] = [TextPart(self.text)] if self.text else []
        parts.extend(
            FunctionCallPart(name=call.name, args=call.arguments, thought_signature=call.thought_signature)
            for call in self.tool_calls
        )
        return ConversationTurn(role="model", parts=tuple(parts))


@dataclass(slots=True)
class OrchestrationResult:
    """Outcome of one orchestration run; always carries text to display."""

    final_text: str
    error: str | None = None
    tool_results: list[ToolCallResult] = field(default_factory=list)
    iterations: int = 0
