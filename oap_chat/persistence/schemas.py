"""Wire models for the chat backend's JSON payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from oap_chat.models import ChatDetail, ChatSession, Message


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Backends with integer primary keys send numeric ids.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class MessagePayload(_Payload):
    role: Literal["user", "model"]
    content: str
    created_at: datetime = Field(alias="createdAt")

    def to_message(self) -> Message:
        return Message(id=self.id, role=self.role, text=self.content, timestamp=self.created_at)


class ChatPayload(_Payload):
    title: str | None = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    def to_chat(self) -> ChatSession:
        return ChatSession(id=self.id, title=self.title, created_at=self.created_at, updated_at=self.updated_at)


class ChatDetailPayload(ChatPayload):
    messages: list[MessagePayload] = Field(default_factory=list)

    def to_detail(self) -> ChatDetail:
        return ChatDetail(chat=self.to_chat(), messages=[m.to_message() for m in self.messages])
