"""Tool-use orchestration loop."""

from __future__ import annotations

import logging

from oap_chat.llm.base import GenerationClient
from oap_chat.models import (
    ConversationTurn,
    ErrorOutcome,
    GenerationRequest,
    GenerationResponse,
    Message,
    OrchestrationResult,
    ToolCallRequest,
    ToolCallResult,
    ToolDescriptor,
    ToolMode,
)
from oap_chat.tools.base import ToolProvider

LOGGER = logging.getLogger(__name__)

FALLBACK_TEXT = "Sorry, I encountered an error processing your request."
DEFAULT_MAX_ITERATIONS = 8


class ToolOrchestrator:
    """Turns one user utterance into a final model answer.

    Alternates generation calls with tool calls until the model answers
    without requesting a tool, or until ``max_iterations`` tool round-trips
    have been made. Never raises for collaborator failures: tool errors are
    handed back to the model, generation errors become ``FALLBACK_TEXT``.
    """

    def __init__(
        self,
        generation_client: GenerationClient,
        tool_provider: ToolProvider,
        system_instruction: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._generation_client = generation_client
        self._tool_provider = tool_provider
        self._system_instruction = system_instruction
        self._max_iterations = max_iterations

    async def run(self, history: list[Message], user_text: str, tool_mode: ToolMode) -> OrchestrationResult:
        """Run the loop for ``user_text`` on top of the committed ``history``."""

        if not user_text.strip():
            raise ValueError("user_text must not be empty")

        contents = [ConversationTurn.from_message(message) for message in history]
        contents.append(ConversationTurn.text("user", user_text))
        tools = await self._tools_for(tool_mode)

        result = OrchestrationResult(final_text="")
        try:
            response = await self._generate(contents, tools)
            while response.tool_calls:
                if result.iterations >= self._max_iterations:
                    LOGGER.warning(
                        "Stopping after %d tool round-trips; model still requested %r",
                        result.iterations,
                        [call.name for call in response.tool_calls],
                    )
                    break
                result.iterations += 1

                tool_results = [await self._call_tool(call) for call in response.tool_calls]
                result.tool_results.extend(tool_results)
                contents.append(response.as_turn())
                contents.append(ConversationTurn(role="function", parts=tuple(r.to_part() for r in tool_results)))

                response = await self._generate(contents, tools)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Orchestration failed after %d tool round-trips", result.iterations)
            result.final_text = FALLBACK_TEXT
            result.error = str(exc) or type(exc).__name__
            return result

        result.final_text = response.text
        return result

    async def _tools_for(self, tool_mode: ToolMode) -> list[ToolDescriptor] | None:
        if tool_mode is not ToolMode.ENABLED:
            return None
        try:
            tools = await self._tool_provider.list_tools()
        except Exception:  # noqa: BLE001
            LOGGER.warning("Failed to fetch tools; continuing without them", exc_info=True)
            return None
        LOGGER.info("Attaching %d tools (provider state=%s)", len(tools), self._tool_provider.state.value)
        return tools or None

    async def _generate(self, contents: list[ConversationTurn], tools: list[ToolDescriptor] | None) -> GenerationResponse:
        request = GenerationRequest(
            system_instruction=self._system_instruction,
            history=list(contents),
            tools=tools,
        )
        return await self._generation_client.generate(request)

    async def _call_tool(self, call: ToolCallRequest) -> ToolCallResult:
        LOGGER.info("Calling tool: %s", call.name)
        try:
            outcome = await self._tool_provider.call_tool(call.name, call.arguments)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Tool %s failed: %s", call.name, exc)
            outcome = ErrorOutcome(f"Error executing tool: {exc}")
        return ToolCallResult(name=call.name, outcome=outcome)
