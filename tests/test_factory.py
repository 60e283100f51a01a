import pytest

from chatbridge.config import Settings
from chatbridge.errors import ConfigurationError
from chatbridge.llm.factory import create_provider
from chatbridge.llm.gemini_provider import GeminiProvider
from chatbridge.llm.openai_provider import OpenAIProvider


def _settings(**overrides) -> Settings:
    values = {"BOT_TOKEN": "123:abc", "TELEGRAM_MCP_HOST": "http://mcp.test/"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LLM_PROVIDER", "OPENAI_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_openai_is_the_default():
    provider = create_provider(_settings(OPENAI_API_KEY="sk-test"))

    assert isinstance(provider, OpenAIProvider)
    assert provider.name == "openai"


def test_kind_is_case_insensitive():
    provider = create_provider(_settings(LLM_PROVIDER=" Gemini ", GEMINI_API_KEY="g-test"))

    assert isinstance(provider, GeminiProvider)


def test_unknown_kind_is_rejected():
    with pytest.raises(ConfigurationError, match="Unknown LLM_PROVIDER"):
        create_provider(_settings(LLM_PROVIDER="anthropic", OPENAI_API_KEY="sk-test"))


@pytest.mark.parametrize("kind, key", [("openai", "OPENAI_API_KEY"), ("gemini", "GEMINI_API_KEY")])
def test_missing_credential_is_rejected(kind, key):
    with pytest.raises(ConfigurationError, match=key):
        create_provider(_settings(LLM_PROVIDER=kind))


def test_mcp_url_is_derived_from_host():
    assert _settings().mcp_url == "http://mcp.test/mcp"
