"""Scheduled task tools."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from chatbridge.scheduler import ScheduledInvocationManager
from chatbridge.tools.base import Tool, ToolContext


class ScheduleTaskTool(Tool):
    """Schedule a prompt for later execution in this chat."""

    name = "schedule_task"
    description = (
        "Schedule a task to run at a specific time or on a recurring schedule. The prompt will be "
        "executed by the AI at the scheduled time and the response sent to the chat."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "prompt": {
                "type": "string",
                "description": (
                    "The prompt to execute at the scheduled time. This will be sent to a LLM so it's "
                    "fine to include logic or be a bit generative - don't be too prescriptive."
                ),
            },
            "schedule": {
                "type": "string",
                "description": (
                    "For recurring tasks: a cron expression (e.g., '0 9 * * *' for every day at 9 AM, "
                    "'0 9 * * 1' for every Monday at 9 AM). For one-time tasks: an ISO 8601 date string "
                    "(e.g., '2024-12-25T10:00:00Z')."
                ),
            },
            "recurring": {
                "type": "boolean",
                "description": "Whether this is a recurring task (true) or a one-time task (false).",
            },
        },
        "required": ["prompt", "schedule", "recurring"],
    }

    def __init__(self, scheduler: ScheduledInvocationManager) -> None:
        self._scheduler = scheduler

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        result = self._scheduler.create(
            chat_id=context.chat_id,
            prompt=kwargs["prompt"],
            schedule=kwargs["schedule"],
            recurring=kwargs["recurring"],
            created_by=context.caller,
        )
        if not result["success"]:
            return result
        return {"success": True, "message": "Task scheduled successfully.", "task_id": result["task_id"]}


class ListTasksTool(Tool):
    """List scheduled tasks of the current chat."""

    name = "list_tasks"
    description = (
        "List all scheduled tasks for the current chat, including their IDs, prompts, schedules, "
        "and next run times."
    )
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    def __init__(self, scheduler: ScheduledInvocationManager) -> None:
        self._scheduler = scheduler

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        tasks = [asdict(info) for info in self._scheduler.list(context.chat_id)]
        return {"success": True, "tasks": tasks, "count": len(tasks)}


class CancelTaskTool(Tool):
    name = "cancel_task"
    description = "Cancel a scheduled task by its ID."
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "task_id": {"type": "string", "description": "The ID of the task to cancel."},
        },
        "required": ["task_id"],
    }

    def __init__(self, scheduler: ScheduledInvocationManager) -> None:
        self._scheduler = scheduler

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        return self._scheduler.cancel(kwargs["task_id"], context.chat_id)


class CancelAllTasksTool(Tool):
    name = "cancel_all_tasks"
    description = "Cancel every scheduled task of the current chat."
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    def __init__(self, scheduler: ScheduledInvocationManager) -> None:
        self._scheduler = scheduler

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        cancelled = self._scheduler.cancel_all(context.chat_id)
        return {"success": True, "message": "All tasks canceled.", "cancelled": cancelled}
