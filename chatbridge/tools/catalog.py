"""Tool catalogs offered to the model."""

from __future__ import annotations

from chatbridge.db import Database
from chatbridge.models import CapabilityServerTool, ToolDeclaration, WebSearchTool
from chatbridge.scheduler import ScheduledInvocationManager
from chatbridge.tools.config_tools import GetConfigTool, ResetConfigTool, SetConfigTool
from chatbridge.tools.notes_tool import AddNoteTool, ClearNotesTool, ListNotesTool, RemoveNoteTool
from chatbridge.tools.registry import ToolRegistry
from chatbridge.tools.scheduling_tools import (
    CancelAllTasksTool,
    CancelTaskTool,
    ListTasksTool,
    ScheduleTaskTool,
)

TELEGRAM_MCP_LABEL = "telegram-mcp"


def telegram_capability(url: str, auth_token: str | None = None) -> CapabilityServerTool:
    return CapabilityServerTool(
        label=TELEGRAM_MCP_LABEL,
        description="A Telegram MCP server exposing telegram functionality",
        url=url,
        auth_token=auth_token,
    )


def build_registry(db: Database | None, scheduler: ScheduledInvocationManager) -> ToolRegistry:
    """Register every locally executed tool."""

    registry = ToolRegistry(db)
    registry.register(ScheduleTaskTool(scheduler))
    registry.register(ListTasksTool(scheduler))
    registry.register(CancelTaskTool(scheduler))
    registry.register(CancelAllTasksTool(scheduler))
    registry.register(GetConfigTool())
    registry.register(SetConfigTool())
    registry.register(ResetConfigTool())
    registry.register(AddNoteTool())
    registry.register(ListNotesTool())
    registry.register(RemoveNoteTool())
    registry.register(ClearNotesTool())
    return registry


def build_catalog(capability: CapabilityServerTool, registry: ToolRegistry) -> list[ToolDeclaration]:
    """Full catalog for inbound message turns."""

    return [capability, WebSearchTool(), *registry.declarations()]


def build_scheduled_catalog(capability: CapabilityServerTool) -> list[ToolDeclaration]:
    """Reduced catalog for scheduled runs.

    Scheduling, config and notes tools are left out so a scheduled prompt
    cannot schedule further prompts.
    """

    return [capability, WebSearchTool()]
