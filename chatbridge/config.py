"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm_provider: str = Field(default="openai", alias="LLM_PROVIDER")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-5-mini", alias="OPENAI_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )
    telegram_bot_token: str = Field(..., alias="BOT_TOKEN")
    telegram_api_base_url: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE_URL")
    telegram_poll_timeout_seconds: int = Field(default=30, alias="TELEGRAM_POLL_TIMEOUT_SECONDS")
    # Base URL of the Telegram MCP server; the capability endpoint is <host>/mcp.
    mcp_host: str = Field(..., alias="TELEGRAM_MCP_HOST")
    mcp_api_key: str | None = Field(default=None, alias="TELEGRAM_MCP_API_KEY")
    database_path: Path = Field(default=Path("chatbridge.db"), alias="DATABASE_PATH")
    max_context_messages: int = Field(default=10, alias="MAX_CONTEXT_MESSAGES")
    max_tool_calls: int = Field(default=6, alias="MAX_TOOL_CALLS")
    request_timeout_seconds: float = Field(default=60.0, alias="REQUEST_TIMEOUT_SECONDS")
    scheduler_timezone: str = Field(default="UTC", alias="SCHEDULER_TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def mcp_url(self) -> str:
        return f"{self.mcp_host.rstrip('/')}/mcp"


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()
