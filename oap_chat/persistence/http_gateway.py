"""PersistenceGateway backed by the chat backend's REST API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from oap_chat.errors import PersistenceError
from oap_chat.models import ChatDetail, ChatSession, Message, Role
from oap_chat.persistence.base import PersistenceGateway
from oap_chat.persistence.schemas import ChatDetailPayload, ChatPayload, MessagePayload

LOGGER = logging.getLogger(__name__)

_CHAT_LIST = TypeAdapter(list[ChatPayload])


class HttpPersistenceGateway(PersistenceGateway):
    """Chats and messages stored by a resource-oriented HTTP backend."""

    def __init__(self, base_url: str, timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    async def list_chats(self) -> list[ChatSession]:
        data = await self._request("GET", "/chats", action="fetch chats")
        return [chat.to_chat() for chat in _validate(_CHAT_LIST.validate_python, data, "chat list")]

    async def get_chat(self, chat_id: str) -> ChatDetail:
        data = await self._request("GET", f"/chats/{_segment(chat_id)}", action="fetch chat")
        return _validate(ChatDetailPayload.model_validate, data, "chat").to_detail()

    async def create_chat(self, title: str | None = None) -> ChatSession:
        data = await self._request("POST", "/chats", action="create chat", json={"title": title})
        return _validate(ChatPayload.model_validate, data, "chat").to_chat()

    async def add_message(self, chat_id: str, role: Role, text: str) -> Message:
        data = await self._request(
            "POST",
            f"/chats/{_segment(chat_id)}/messages",
            action="add message",
            json={"role": role, "content": text},
        )
        return _validate(MessagePayload.model_validate, data, "message").to_message()

    async def delete_chat(self, chat_id: str) -> None:
        await self._request("DELETE", f"/chats/{_segment(chat_id)}", action="delete chat", expect_body=False)

    async def update_chat_title(self, chat_id: str, title: str) -> ChatSession:
        data = await self._request("PATCH", f"/chats/{_segment(chat_id)}", action="update chat", json={"title": title})
        return _validate(ChatPayload.model_validate, data, "chat").to_chat()

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        json: dict[str, Any] | None = None,
        expect_body: bool = True,
    ) -> Any:
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout_seconds) as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Failed to {action}: {exc}") from exc

        if not response.is_success:
            LOGGER.warning("%s %s returned HTTP %s", method, path, response.status_code)
            raise PersistenceError(f"Failed to {action} (HTTP {response.status_code})")
        if not expect_body:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise PersistenceError(f"Failed to {action}: response is not JSON") from exc


def _validate(validator: Any, data: Any, what: str) -> Any:
    try:
        return validator(data)
    except ValidationError as exc:
        raise PersistenceError(f"Backend returned a malformed {what}: {exc}") from exc


def _segment(chat_id: str) -> str:
    return quote(chat_id, safe="")
