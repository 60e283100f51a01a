"""Provider registry and factory."""

from __future__ import annotations

import logging
from typing import Callable

from chatbridge.config import Settings
from chatbridge.errors import ConfigurationError
from chatbridge.llm.base import LLMProvider
from chatbridge.llm.gemini_provider import GeminiProvider
from chatbridge.llm.openai_provider import OpenAIProvider

LOGGER = logging.getLogger(__name__)


def _openai(settings: Settings) -> LLMProvider:
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is required for the openai provider")
    return OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )


def _gemini(settings: Settings) -> LLMProvider:
    if not settings.gemini_api_key:
        raise ConfigurationError("GEMINI_API_KEY is required for the gemini provider")
    return GeminiProvider(
        api_key=settings.gemini_api_key,
        default_model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )


PROVIDERS: dict[str, Callable[[Settings], LLMProvider]] = {
    "openai": _openai,
    "gemini": _gemini,
}


def create_provider(settings: Settings) -> LLMProvider:
    """Build the provider selected by ``LLM_PROVIDER``."""

    kind = settings.llm_provider.strip().lower()
    builder = PROVIDERS.get(kind)
    if builder is None:
        raise ConfigurationError(
            f"Unknown LLM_PROVIDER {settings.llm_provider!r} (expected one of: {', '.join(sorted(PROVIDERS))})"
        )
    provider = builder(settings)
    LOGGER.info("Using LLM provider: %s", provider.name)
    return provider
