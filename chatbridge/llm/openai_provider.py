"""OpenAI Responses API implementation of LLMProvider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chatbridge.errors import ProviderError
from chatbridge.llm.base import LLMProvider
from chatbridge.models import (
    CapabilityServerTool,
    CompletionOptions,
    FunctionTool,
    ImagePart,
    LLMResponse,
    TextPart,
    ToolCall,
    ToolDeclaration,
    Turn,
    WebSearchTool,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5-mini"


class OpenAIProvider(LLMProvider):
    """LLM provider using OpenAI's Responses endpoint.

    The provider state of a response is the raw list of output items. It is
    replayed in front of the ``function_call_output`` items on the next call,
    which is what the Responses API expects for a tool loop.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        default_model: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._default_model = default_model or DEFAULT_MODEL
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds

    async def complete(
        self,
        input: list[Turn],
        tools: list[ToolDeclaration],
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        options = options or CompletionOptions()
        payload: dict[str, Any] = {
            "model": options.model or self._default_model,
            "input": self.convert_input(input),
        }
        if tools:
            payload["tools"] = self.convert_tools(tools)
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_output_tokens"] = options.max_tokens

        timeout = httpx.Timeout(self._timeout_seconds)
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout) as client:
                response = await client.post(
                    "/responses",
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                self.name, f"HTTP {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(self.name, str(exc) or type(exc).__name__) from exc

        return self.parse_response(data)

    def convert_tools(self, tools: list[ToolDeclaration]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for tool in tools:
            if isinstance(tool, FunctionTool):
                converted.append(
                    {
                        "type": "function",
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                        "strict": tool.strict,
                    }
                )
            elif isinstance(tool, CapabilityServerTool):
                entry: dict[str, Any] = {
                    "type": "mcp",
                    "server_label": tool.label,
                    "server_description": tool.description,
                    "server_url": tool.url,
                    "require_approval": "never",
                }
                if tool.auth_token:
                    entry["headers"] = {"Authorization": f"Bearer {tool.auth_token}"}
                converted.append(entry)
            elif isinstance(tool, WebSearchTool):
                converted.append({"type": "web_search"})
            else:
                raise TypeError(f"Unsupported tool declaration: {tool!r}")
        return converted

    def convert_input(self, input: list[Turn]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for turn in input:
            if turn.role == "tool":
                items.append({"type": "function_call_output", "call_id": turn.call_id, "output": turn.text()})
            elif turn.role == "assistant":
                native = turn.extensions.get(self.name)
                if native is not None:
                    items.extend(native)
                    continue
                if turn.text():
                    items.append({"role": "assistant", "content": turn.text()})
                for call in turn.tool_calls:
                    items.append(
                        {
                            "type": "function_call",
                            "call_id": call.id,
                            "name": call.name,
                            "arguments": call.arguments,
                        }
                    )
            elif isinstance(turn.content, str):
                items.append({"role": turn.role, "content": turn.content})
            else:
                items.append({"role": turn.role, "content": [_content_part(part) for part in turn.content]})
        return items

    def parse_response(self, data: dict[str, Any]) -> LLMResponse:
        try:
            output = data["output"]
            tool_calls: list[ToolCall] = []
            text_chunks: list[str] = []
            for item in output:
                item_type = item.get("type")
                if item_type == "function_call":
                    tool_calls.append(
                        ToolCall(
                            kind="function",
                            id=item["call_id"],
                            name=item["name"],
                            arguments=item.get("arguments") or "{}",
                        )
                    )
                elif item_type == "mcp_call":
                    tool_calls.append(
                        ToolCall(
                            kind="capability",
                            id=item["id"],
                            name=item.get("name") or "",
                            arguments=item.get("arguments") or "{}",
                        )
                    )
                elif item_type == "message":
                    for content in item.get("content", []):
                        if content.get("type") == "output_text":
                            text_chunks.append(content.get("text", ""))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProviderError(self.name, f"Unexpected response shape: {exc!r}") from exc

        text = "".join(text_chunks) or None
        _LOGGER.info(
            "LLM response: status=%r text=%r tool_calls=%r",
            data.get("status"),
            text[:200] if text else "",
            [tc.name for tc in tool_calls],
        )
        return LLMResponse(tool_calls=tool_calls, text=text, provider_state=output)


def _content_part(part: TextPart | ImagePart) -> dict[str, Any]:
    if isinstance(part, ImagePart):
        return {"type": "input_image", "image_url": part.url, "detail": part.detail}
    return {"type": "input_text", "text": part.text}
