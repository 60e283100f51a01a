"""Volatile scheduler for one-shot and recurring prompts."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from chatbridge.models import ScheduledTask, TaskInfo

LOGGER = logging.getLogger(__name__)


class ScheduledInvocationManager:
    """Owns every pending scheduled invocation and its APScheduler job.

    Nothing is persisted: a restart drops all pending tasks. The live task
    map is shared between tool handlers (create/cancel) and job fires
    (self-removal), so every access goes through ``_lock``.
    """

    def __init__(
        self,
        executor: Callable[[ScheduledTask], Awaitable[None]],
        timezone: str = "UTC",
    ) -> None:
        self._executor = executor
        self._timezone = timezone
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def start(self) -> None:
        """Start the underlying scheduler. Must be called from the event loop."""

        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        with self._lock:
            self._tasks.clear()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def create(
        self,
        chat_id: str,
        prompt: str,
        schedule: str,
        recurring: bool,
        created_by: str,
    ) -> dict[str, Any]:
        """Schedule ``prompt`` for ``chat_id``.

        Args:
            schedule: a 5-field crontab expression when ``recurring``,
                otherwise an ISO 8601 timestamp strictly in the future.

        Returns:
            ``{"success": True, "task_id": ...}`` or ``{"success": False, "error": ...}``.
        """
        schedule = schedule.strip()
        if recurring:
            try:
                trigger = CronTrigger.from_crontab(schedule, timezone=self._timezone)
            except ValueError as exc:
                return {"success": False, "error": f"Invalid cron expression: {exc}"}
        else:
            run_at = _parse_timestamp(schedule)
            if run_at is None:
                return {
                    "success": False,
                    "error": "Invalid date format for one-time task. Use ISO 8601 format.",
                }
            if run_at <= datetime.now(timezone.utc):
                return {"success": False, "error": "Scheduled time must be in the future."}
            trigger = DateTrigger(run_date=run_at)

        task_id = str(uuid.uuid4())
        task = ScheduledTask(
            id=task_id,
            chat_id=chat_id,
            prompt=prompt,
            schedule=schedule,
            recurring=recurring,
            created_by=created_by,
        )
        self.start()
        with self._lock:
            task.job = self._scheduler.add_job(
                self._fire,
                trigger,
                args=[task_id],
                id=task_id,
                misfire_grace_time=None,
                coalesce=True,
            )
            self._tasks[task_id] = task
        LOGGER.info(
            "Created scheduled task %s for chat %s: %r (%s)",
            task_id,
            chat_id,
            prompt,
            "recurring" if recurring else "one-time",
        )
        return {"success": True, "task_id": task_id}

    def list(self, chat_id: str) -> list[TaskInfo]:
        with self._lock:
            tasks = [task for task in self._tasks.values() if task.chat_id == chat_id]
        return [
            TaskInfo(
                id=task.id,
                prompt=task.prompt,
                schedule=task.schedule,
                recurring=task.recurring,
                created_by=task.created_by,
                next_run=_next_run(task),
            )
            for task in tasks
        ]

    def cancel(self, task_id: str, chat_id: str) -> dict[str, Any]:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return {"success": False, "error": "Task not found."}
            if task.chat_id != chat_id:
                return {"success": False, "error": "Task does not belong to this chat."}
            self._remove_job(task)
            del self._tasks[task_id]
        LOGGER.info("Cancelled scheduled task %s", task_id)
        return {"success": True}

    def cancel_all(self, chat_id: str) -> int:
        """Cancel every task of ``chat_id`` and return how many were live."""

        with self._lock:
            doomed = [task for task in self._tasks.values() if task.chat_id == chat_id]
            for task in doomed:
                self._remove_job(task)
                del self._tasks[task.id]
        for task in doomed:
            LOGGER.info("Cancelled task %s for chat %s", task.id, chat_id)
        return len(doomed)

    async def _fire(self, task_id: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            return

        LOGGER.info("Executing scheduled task %s: %s", task.id, task.prompt)
        try:
            await self._executor(task)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Error executing scheduled task %s", task.id)
        finally:
            if not task.recurring:
                with self._lock:
                    self._tasks.pop(task_id, None)
                LOGGER.info("One-time task %s completed and removed.", task_id)

    def _remove_job(self, task: ScheduledTask) -> None:
        if task.job is None:
            return
        try:
            task.job.remove()
        except JobLookupError:
            # A one-shot job drops itself from APScheduler once it has fired.
            pass


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _next_run(task: ScheduledTask) -> str | None:
    next_run_time = getattr(task.job, "next_run_time", None)
    return next_run_time.isoformat() if next_run_time else None
