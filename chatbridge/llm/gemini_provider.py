"""Google Gemini implementation of LLMProvider."""

from __future__ import annotations

import json
import logging
import uuid
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
    ToolCall,
    ToolDeclaration,
    Turn,
    WebSearchTool,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

_TYPE_MAP = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
    "object": "OBJECT",
}


class GeminiProvider(LLMProvider):
    """LLM provider using the Gemini ``generateContent`` endpoint.

    Gemini is stateless over ``contents``, but model turns carry parts (for
    example thought signatures) that must be sent back unchanged. The raw
    model parts are therefore kept as provider state and replayed for the
    assistant turn on the next call.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        default_model: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
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
        model = options.model or self._default_model
        system_instruction, contents = self.convert_input(input)

        payload: dict[str, Any] = {"contents": contents}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        gemini_tools = self.convert_tools(tools)
        if gemini_tools:
            payload["tools"] = gemini_tools
        generation_config: dict[str, Any] = {}
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        timeout = httpx.Timeout(self._timeout_seconds)
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout) as client:
                response = await client.post(
                    f"/models/{model}:generateContent",
                    headers={"x-goog-api-key": self._api_key, "Content-Type": "application/json"},
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
        declarations: list[dict[str, Any]] = []
        converted: list[dict[str, Any]] = []
        for tool in tools:
            if isinstance(tool, FunctionTool):
                declarations.append(
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": convert_json_schema(tool.parameters),
                    }
                )
            elif isinstance(tool, WebSearchTool):
                converted.append({"googleSearch": {}})
            elif isinstance(tool, CapabilityServerTool):
                _LOGGER.warning(
                    "Capability server %r is not supported by the Gemini backend; skipping it", tool.label
                )
            else:
                raise TypeError(f"Unsupported tool declaration: {tool!r}")
        if declarations:
            converted.insert(0, {"functionDeclarations": declarations})
        return converted

    def convert_input(self, input: list[Turn]) -> tuple[str | None, list[dict[str, Any]]]:
        system_instruction: str | None = None
        contents: list[dict[str, Any]] = []
        # Call ids Gemini issued itself; synthetic ids are never sent back.
        native_call_ids: set[str] = set()
        for turn in input:
            if turn.role == "system":
                system_instruction = turn.text()
            elif turn.role == "user":
                contents.append({"role": "user", "parts": _user_parts(turn)})
            elif turn.role == "assistant":
                native = turn.extensions.get(self.name)
                if native is not None:
                    contents.append({"role": "model", "parts": list(native)})
                    native_call_ids = {
                        part["functionCall"]["id"]
                        for part in native
                        if (part.get("functionCall") or {}).get("id")
                    }
                    continue
                native_call_ids = set()
                parts: list[dict[str, Any]] = []
                if turn.text():
                    parts.append({"text": turn.text()})
                for call in turn.tool_calls:
                    parts.append({"functionCall": {"name": call.name, "args": _loads_object(call.arguments)}})
                if parts:
                    contents.append({"role": "model", "parts": parts})
            elif turn.role == "tool":
                function_response: dict[str, Any] = {
                    "name": turn.name or "",
                    "response": _loads_object(turn.text()),
                }
                if turn.call_id in native_call_ids:
                    function_response["id"] = turn.call_id
                part = {"functionResponse": function_response}
                # Gemini expects all responses to one model turn in a single user turn.
                previous = contents[-1] if contents else None
                if previous and previous["role"] == "user" and all(
                    "functionResponse" in p for p in previous["parts"]
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
        return system_instruction, contents

    def parse_response(self, data: dict[str, Any]) -> LLMResponse:
        try:
            candidates = data.get("candidates") or []
            parts: list[dict[str, Any]] = []
            if candidates:
                parts = (candidates[0].get("content") or {}).get("parts") or []
            tool_calls: list[ToolCall] = []
            text_chunks: list[str] = []
            for part in parts:
                if "functionCall" in part:
                    call = part["functionCall"]
                    tool_calls.append(
                        ToolCall(
                            kind="function",
                            id=call.get("id") or f"gemini_{uuid.uuid4().hex[:12]}",
                            name=call.get("name") or "",
                            arguments=json.dumps(call.get("args") or {}),
                        )
                    )
                elif part.get("text") and not part.get("thought"):
                    text_chunks.append(part["text"])
        except (TypeError, AttributeError) as exc:
            raise ProviderError(self.name, f"Unexpected response shape: {exc!r}") from exc

        text = "".join(text_chunks) or None
        _LOGGER.info(
            "LLM response: finish_reason=%r text=%r tool_calls=%r",
            candidates[0].get("finishReason") if candidates else None,
            text[:200] if text else "",
            [tc.name for tc in tool_calls],
        )
        return LLMResponse(tool_calls=tool_calls, text=text, provider_state=parts or None)


def convert_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Translate a JSON Schema fragment into Gemini's schema dialect."""

    converted: dict[str, Any] = {}
    schema_type = schema.get("type")
    if schema_type:
        if isinstance(schema_type, list):
            non_null = [t for t in schema_type if t != "null"]
            if len(non_null) < len(schema_type):
                converted["nullable"] = True
            schema_type = non_null[0] if non_null else "string"
        converted["type"] = _TYPE_MAP.get(schema_type, "STRING")
    if "description" in schema:
        converted["description"] = schema["description"]
    if "properties" in schema:
        converted["properties"] = {
            key: convert_json_schema(value) for key, value in schema["properties"].items()
        }
    if "required" in schema:
        converted["required"] = list(schema["required"])
    if "items" in schema:
        converted["items"] = convert_json_schema(schema["items"])
    if "enum" in schema:
        converted["enum"] = list(schema["enum"])
    return converted


def _user_parts(turn: Turn) -> list[dict[str, Any]]:
    if isinstance(turn.content, str):
        return [{"text": turn.content}]
    parts: list[dict[str, Any]] = []
    for part in turn.content:
        if isinstance(part, ImagePart):
            # Gemini sniffs the real type from the file.
            parts.append({"fileData": {"mimeType": "image/jpeg", "fileUri": part.url}})
        else:
            parts.append({"text": part.text})
    return parts


def _loads_object(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"result": raw}
    return parsed if isinstance(parsed, dict) else {"result": parsed}
