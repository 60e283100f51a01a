from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.config import Settings
from chatbridge.main import build_app
from chatbridge.models import LLMResponse
from chatbridge.tools.catalog import TELEGRAM_MCP_LABEL


def _settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        BOT_TOKEN="123:abc",
        TELEGRAM_MCP_HOST="http://mcp.test",
        TELEGRAM_MCP_API_KEY="mcp-secret",
        DATABASE_PATH=str(tmp_path / "chatbridge.db"),
        MAX_TOOL_CALLS="4",
    )


def _provider() -> MagicMock:
    provider = MagicMock()
    provider.name = "stub"
    provider.complete = AsyncMock(return_value=LLMResponse(text="done"))
    return provider


def test_build_app_wires_capability_and_catalogs(tmp_path):
    app = build_app(_settings(tmp_path), provider=_provider())

    assert app.settings.max_tool_calls == 4
    capability = app.runtime._catalog[0]
    assert capability.label == TELEGRAM_MCP_LABEL
    assert capability.url == "http://mcp.test/mcp"
    assert capability.auth_token == "mcp-secret"
    assert len(app.runtime._scheduled_catalog) == 2


@pytest.mark.asyncio
async def test_scheduled_tasks_run_through_the_runtime(tmp_path):
    provider = _provider()
    app = build_app(_settings(tmp_path), provider=provider)
    try:
        created = app.scheduler.create("chat-1", "say hi", "0 9 * * *", recurring=True, created_by="Ana")
        await app.scheduler._fire(created["task_id"])
    finally:
        app.scheduler.shutdown()

    provider.complete.assert_awaited_once()
    prompt = provider.complete.await_args.args[0][1].content
    assert "say hi" in prompt
