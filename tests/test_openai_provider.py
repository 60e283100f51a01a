"""Tests for OpenAIProvider."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from chatbridge.errors import ProviderError
from chatbridge.llm.openai_provider import OpenAIProvider
from chatbridge.models import (
    CapabilityServerTool,
    ImagePart,
    LLMResponse,
    TextPart,
    ToolCall,
    ToolResult,
    Turn,
    WebSearchTool,
)
from chatbridge.tools.catalog import build_catalog, build_registry


def _mock_client(payload: dict | None = None, status_code: int = 200) -> AsyncMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = json.dumps(payload or {})
    if status_code >= 400:
        request = httpx.Request("POST", "https://api.openai.com/v1/responses")
        resp.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("boom", request=request, response=resp)
        )
    else:
        resp.raise_for_status = MagicMock()
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = AsyncMock(return_value=resp)
    return client


OUTPUT = [
    {"type": "reasoning", "id": "rs_1", "summary": []},
    {"type": "mcp_list_tools", "id": "mcpl_1", "server_label": "telegram-mcp", "tools": []},
    {
        "type": "mcp_call",
        "id": "mcp_1",
        "name": "sendMessage",
        "arguments": '{"chat_id": 1, "text": "on it"}',
        "output": "ok",
    },
    {"type": "function_call", "id": "fc_1", "call_id": "call_1", "name": "add_note", "arguments": '{"key": "k"}'},
    {"type": "function_call", "id": "fc_2", "call_id": "call_2", "name": "list_notes", "arguments": "{}"},
    {
        "type": "message",
        "role": "assistant",
        "content": [{"type": "output_text", "text": "Hello "}, {"type": "output_text", "text": "there"}],
    },
]


def test_catalog_conversion_preserves_names_and_required():
    capability = CapabilityServerTool(label="telegram-mcp", description="tg", url="http://mcp/mcp")
    registry = build_registry(None, MagicMock())
    catalog = build_catalog(capability, registry)

    converted = OpenAIProvider(api_key="k").convert_tools(catalog)

    functions = {t["name"]: t for t in converted if t["type"] == "function"}
    for declaration in registry.declarations():
        assert functions[declaration.name]["parameters"]["required"] == declaration.parameters["required"]
        assert functions[declaration.name]["strict"] is False
    assert converted[0]["type"] == "mcp"
    assert converted[0]["server_url"] == "http://mcp/mcp"
    assert converted[0]["require_approval"] == "never"
    assert "headers" not in converted[0]
    assert converted[1] == {"type": "web_search"}


def test_capability_token_becomes_bearer_header():
    tool = CapabilityServerTool(label="telegram-mcp", description="tg", url="http://mcp/mcp", auth_token="s3cret")

    [converted] = OpenAIProvider(api_key="k").convert_tools([tool])

    assert converted["headers"] == {"Authorization": "Bearer s3cret"}


def test_convert_input_handles_multimodal_user_turn():
    provider = OpenAIProvider(api_key="k")
    items = provider.convert_input(
        [
            Turn(role="system", content="be nice"),
            Turn(role="user", content=[TextPart("look"), ImagePart(url="https://img/cat.jpg", detail="high")]),
        ]
    )

    assert items[0] == {"role": "system", "content": "be nice"}
    assert items[1]["content"] == [
        {"type": "input_text", "text": "look"},
        {"type": "input_image", "image_url": "https://img/cat.jpg", "detail": "high"},
    ]


def test_parse_response_collects_every_call_and_text():
    response = OpenAIProvider(api_key="k").parse_response({"status": "completed", "output": OUTPUT})

    assert [(tc.kind, tc.id, tc.name) for tc in response.tool_calls] == [
        ("capability", "mcp_1", "sendMessage"),
        ("function", "call_1", "add_note"),
        ("function", "call_2", "list_notes"),
    ]
    assert response.text == "Hello there"
    assert response.provider_state == OUTPUT


def test_parse_response_rejects_unexpected_shape():
    with pytest.raises(ProviderError):
        OpenAIProvider(api_key="k").parse_response({"error": "nope"})


def test_next_input_replays_native_output_then_results():
    provider = OpenAIProvider(api_key="k")
    response = provider.parse_response({"output": OUTPUT})
    initial = [Turn(role="system", content="sys"), Turn(role="user", content="hi")]

    next_input = provider.build_next_input(
        initial,
        response,
        [ToolResult(call_id="call_1", output='{"success": true}'), ToolResult(call_id="call_2", output="{}")],
    )
    items = provider.convert_input(next_input)

    assert next_input[:2] == initial
    assert items[2 : 2 + len(OUTPUT)] == OUTPUT
    assert items[-2:] == [
        {"type": "function_call_output", "call_id": "call_1", "output": '{"success": true}'},
        {"type": "function_call_output", "call_id": "call_2", "output": "{}"},
    ]


def test_assistant_turn_without_extension_uses_canonical_calls():
    provider = OpenAIProvider(api_key="k")
    turn = Turn(
        role="assistant",
        content="",
        tool_calls=[ToolCall(kind="function", id="call_9", name="get_config", arguments="{}")],
    )

    assert provider.convert_input([turn]) == [
        {"type": "function_call", "call_id": "call_9", "name": "get_config", "arguments": "{}"}
    ]


@pytest.mark.asyncio
async def test_complete_posts_to_responses_endpoint():
    client = _mock_client({"output": OUTPUT})

    with patch("chatbridge.llm.openai_provider.httpx.AsyncClient", return_value=client):
        provider = OpenAIProvider(api_key="test-key", default_model="gpt-test")
        response = await provider.complete([Turn(role="user", content="hi")], [WebSearchTool()])

    call = client.post.call_args
    assert call.args[0] == "/responses"
    assert call.kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert call.kwargs["json"]["model"] == "gpt-test"
    assert call.kwargs["json"]["tools"] == [{"type": "web_search"}]
    assert isinstance(response, LLMResponse)
    assert len(response.function_calls) == 2


@pytest.mark.asyncio
async def test_complete_wraps_http_errors():
    client = _mock_client({"error": {"message": "bad key"}}, status_code=401)

    with patch("chatbridge.llm.openai_provider.httpx.AsyncClient", return_value=client):
        provider = OpenAIProvider(api_key="bad-key")
        with pytest.raises(ProviderError) as exc_info:
            await provider.complete([Turn(role="user", content="hi")], [])

    assert "401" in str(exc_info.value)
    client.post.assert_awaited_once()


@pytest.mark.asyncio
async def test_complete_wraps_transport_errors():
    client = _mock_client()
    client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))

    with patch("chatbridge.llm.openai_provider.httpx.AsyncClient", return_value=client):
        with pytest.raises(ProviderError):
            await OpenAIProvider(api_key="k").complete([Turn(role="user", content="hi")], [])
