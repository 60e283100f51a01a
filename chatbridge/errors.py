"""Exceptions that abort a turn or prevent startup.

Tool failures are not exceptions: the tool registry turns them into
``{"success": false, "error": ...}`` payloads for the model to read.
"""

from __future__ import annotations


class ProviderError(RuntimeError):
    """A model backend call failed or returned data that could not be parsed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ConfigurationError(RuntimeError):
    """Missing credential or unknown provider kind."""
