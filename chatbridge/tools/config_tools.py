"""Per-chat configuration tools."""

from __future__ import annotations

from typing import Any

from chatbridge.models import ChatConfig
from chatbridge.tools.base import Tool, ToolContext

_CONFIG_FIELDS = ("custom_prompt", "language", "personality")


def format_config_for_prompt(config: ChatConfig) -> str:
    """Render the non-default settings as system prompt additions."""

    parts: list[str] = []
    if config.custom_prompt:
        parts.append(f"Custom instructions for this chat: {config.custom_prompt}")
    if config.language:
        parts.append(f"Respond in {config.language}.")
    if config.personality:
        parts.append(f"Personality: {config.personality}.")
    return "\n\n".join(parts)


class GetConfigTool(Tool):
    name = "get_config"
    description = (
        "Get the current chat configuration including custom prompt, language preference, "
        "and personality settings."
    )
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        return {"success": True, "config": context.session.config.to_dict()}


class SetConfigTool(Tool):
    """Partial update: omitted fields keep their value, null clears them."""

    name = "set_config"
    description = (
        "Update the chat configuration. You can set a custom prompt (additional instructions), "
        "preferred language, and/or personality. Pass null to clear a specific setting."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "custom_prompt": {
                "type": ["string", "null"],
                "description": (
                    "Custom instructions to add to the system prompt for this chat. This will be "
                    "included in every response. Use this for things like 'Always respond with emojis' "
                    "or 'You are a cooking assistant'. Pass null to clear."
                ),
            },
            "language": {
                "type": ["string", "null"],
                "description": (
                    "Preferred language and locale for responses (e.g., 'Portuguese', 'Spanish', "
                    "'French'). Pass null to clear and use default."
                ),
            },
            "personality": {
                "type": ["string", "null"],
                "description": (
                    "Personality traits for the bot (e.g., 'formal and professional', 'casual and "
                    "friendly', 'sarcastic and witty', 'pirate speak'). Pass null to clear."
                ),
            },
        },
        "required": [],
    }

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        config = context.session.config
        for field_name in _CONFIG_FIELDS:
            if field_name in kwargs:
                setattr(config, field_name, kwargs[field_name])
        return {"success": True, "message": "Configuration updated.", "config": config.to_dict()}


class ResetConfigTool(Tool):
    name = "reset_config"
    description = (
        "Reset all chat configuration to defaults, clearing custom prompt, language, and "
        "personality settings."
    )
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        context.session.config = ChatConfig()
        return {
            "success": True,
            "message": "Configuration reset to defaults.",
            "config": context.session.config.to_dict(),
        }
