"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from chatbridge.models import CompletionOptions, LLMResponse, ToolDeclaration, ToolResult, Turn


class LLMProvider(ABC):
    """Abstract model provider used by the agent runtime.

    Implementations hold no per-turn state and are shared by every turn.
    """

    name: str

    @abstractmethod
    async def complete(
        self,
        input: list[Turn],
        tools: list[ToolDeclaration],
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Run one completion and return the canonical response."""

    def build_next_input(
        self,
        current_input: list[Turn],
        response: LLMResponse,
        tool_results: list[ToolResult],
    ) -> list[Turn]:
        """Append the model's tool calls and their results to the input.

        The assistant turn stores ``response.provider_state`` under this
        provider's name so the next ``complete`` can replay the backend's
        native output verbatim.
        """

        names = {tc.id: tc.name for tc in response.tool_calls}
        extensions = {self.name: response.provider_state} if response.provider_state is not None else {}
        assistant = Turn(
            role="assistant",
            content=response.text or "",
            tool_calls=response.function_calls,
            extensions=extensions,
        )
        results = [
            Turn(role="tool", content=result.output, call_id=result.call_id, name=names.get(result.call_id))
            for result in tool_results
        ]
        return [*current_input, assistant, *results]
