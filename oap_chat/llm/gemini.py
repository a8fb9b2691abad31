"""Gemini implementation of GenerationClient."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from oap_chat.config import Settings
from oap_chat.errors import GenerationError
from oap_chat.llm.base import GenerationClient
from oap_chat.models import (
    ConversationTurn,
    FunctionCallPart,
    FunctionResponsePart,
    GenerationRequest,
    GenerationResponse,
    Part,
    TextPart,
    ToolCallRequest,
    ToolDescriptor,
)

_LOGGER = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF_SECONDS = [5, 15, 45]

# JSON-Schema keywords the functionDeclarations endpoint rejects.
_UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties"})


class GeminiClient(GenerationClient):
    """Generation client using the Gemini generateContent REST endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        payload = build_payload(request)
        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        path = f"/models/{self._settings.gemini_model}:generateContent"
        try:
            async with httpx.AsyncClient(base_url=self._settings.gemini_base_url, timeout=timeout) as client:
                for attempt in range(_MAX_RETRIES + 1):
                    response = await client.post(
                        path,
                        headers={
                            "x-goog-api-key": self._settings.gemini_api_key,
                            "Content-Type": "application/json",
                        },
                        json=payload,
                    )
                    if response.status_code == 429 and attempt < _MAX_RETRIES:
                        wait = _RETRY_BACKOFF_SECONDS[attempt]
                        _LOGGER.warning(
                            "Gemini rate limited (429), retrying in %ds (attempt %d/%d)",
                            wait,
                            attempt + 1,
                            _MAX_RETRIES,
                        )
                        await asyncio.sleep(wait)
                        continue
                    response.raise_for_status()
                    break
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise GenerationError(f"Gemini returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise GenerationError(f"Gemini request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationError("Gemini returned a non-JSON body") from exc

        return parse_response(data)


def build_payload(request: GenerationRequest) -> dict[str, Any]:
    """Translate a GenerationRequest into a generateContent request body."""

    payload: dict[str, Any] = {
        "systemInstruction": {"parts": [{"text": request.system_instruction}]},
        "contents": [_turn_to_content(turn) for turn in request.history],
    }
    if request.tools:
        payload["tools"] = [{"functionDeclarations": [_declaration(tool) for tool in request.tools]}]
    return payload


def parse_response(data: Any) -> GenerationResponse:
    """Parse a generateContent response body.

    Raises:
        GenerationError: if the body does not have the expected shape.
    """
    if not isinstance(data, dict):
        raise GenerationError("Gemini response is not an object")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        feedback = data.get("promptFeedback")
        raise GenerationError(f"Gemini response has no candidates (promptFeedback={feedback!r})")
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise GenerationError("Gemini candidate is not an object")

    finish_reason = candidate.get("finishReason")
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise GenerationError("Gemini candidate content is not an object")
    raw_parts = content.get("parts") or []
    if not isinstance(raw_parts, list):
        raise GenerationError("Gemini candidate content is malformed")

    parts: list[Part] = []
    texts: list[str] = []
    tool_calls: list[ToolCallRequest] = []
    for raw in raw_parts:
        if not isinstance(raw, dict):
            raise GenerationError("Gemini content part is not an object")
        if "functionCall" in raw:
            call = raw["functionCall"]
            if not isinstance(call, dict) or not call.get("name"):
                raise GenerationError("Gemini functionCall part is malformed")
            args = call.get("args") or {}
            if not isinstance(args, dict):
                raise GenerationError(f"Gemini functionCall {call['name']!r} has non-object args")
            signature = raw.get("thoughtSignature")
            tool_calls.append(ToolCallRequest(name=call["name"], arguments=args, thought_signature=signature))
            parts.append(FunctionCallPart(name=call["name"], args=args, thought_signature=signature))
        elif isinstance(raw.get("text"), str):
            if raw.get("thought"):
                continue
            texts.append(raw["text"])
            parts.append(TextPart(raw["text"]))

    text = "".join(texts)
    _LOGGER.info(
        "LLM response: finish_reason=%r content=%r tool_calls=%r",
        finish_reason,
        text[:200],
        [call.name for call in tool_calls],
    )
    return GenerationResponse(text=text, tool_calls=tool_calls, parts=tuple(parts), finish_reason=finish_reason)


def sanitize_schema(schema: Any) -> Any:
    """Drop the JSON-Schema keys Gemini does not accept, recursively."""

    if isinstance(schema, dict):
        return {key: sanitize_schema(value) for key, value in schema.items() if key not in _UNSUPPORTED_SCHEMA_KEYS}
    if isinstance(schema, list):
        return [sanitize_schema(item) for item in schema]
    return schema


def _declaration(tool: ToolDescriptor) -> dict[str, Any]:
    declaration: dict[str, Any] = {"name": tool.name, "description": tool.description}
    if tool.parameter_schema.get("properties"):
        declaration["parameters"] = sanitize_schema(tool.parameter_schema)
    return declaration


def _turn_to_content(turn: ConversationTurn) -> dict[str, Any]:
    return {"role": turn.role, "parts": [_part_to_json(part) for part in turn.parts]}


def _part_to_json(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCallPart):
        data: dict[str, Any] = {"functionCall": {"name": part.name, "args": part.args}}
        if part.thought_signature:
            data["thoughtSignature"] = part.thought_signature
        return data
    if isinstance(part, FunctionResponsePart):
        return {"functionResponse": {"name": part.name, "response": part.response}}
    raise TypeError(f"Unsupported content part: {part!r}")
