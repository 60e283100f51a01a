"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from chatbridge.agent_runtime import AgentRuntime
from chatbridge.config import Settings, load_settings
from chatbridge.db import Database
from chatbridge.handlers import MessageHandler
from chatbridge.llm.base import LLMProvider
from chatbridge.llm.factory import create_provider
from chatbridge.models import ScheduledTask
from chatbridge.scheduler import ScheduledInvocationManager
from chatbridge.telegram_adapter import TelegramAdapter
from chatbridge.tools.catalog import build_catalog, build_registry, build_scheduled_catalog, telegram_capability

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Everything built once at startup and shared by all turns."""

    settings: Settings
    db: Database
    provider: LLMProvider
    scheduler: ScheduledInvocationManager
    runtime: AgentRuntime


def build_app(settings: Settings, provider: LLMProvider | None = None) -> AppContext:
    """Wire the application layers. ``provider`` overrides the configured backend."""

    db = Database(settings.database_path)
    db.initialize()

    provider = provider or create_provider(settings)
    # ``runtime`` is bound below, before any task can be created or fired.
    async def run_scheduled(task: ScheduledTask) -> None:
        await runtime.run_scheduled(task)

    scheduler = ScheduledInvocationManager(executor=run_scheduled, timezone=settings.scheduler_timezone)
    registry = build_registry(db, scheduler)
    capability = telegram_capability(settings.mcp_url, settings.mcp_api_key)
    runtime = AgentRuntime(
        llm=provider,
        tool_registry=registry,
        catalog=build_catalog(capability, registry),
        scheduled_catalog=build_scheduled_catalog(capability),
        max_tool_calls=settings.max_tool_calls,
        max_context_messages=settings.max_context_messages,
        request_timeout_seconds=settings.request_timeout_seconds,
    )
    return AppContext(settings=settings, db=db, provider=provider, scheduler=scheduler, runtime=runtime)


async def run() -> None:
    """Initialize app layers and start processing loop."""

    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = build_app(settings)

    telegram = TelegramAdapter(
        token=settings.telegram_bot_token,
        base_url=settings.telegram_api_base_url,
        poll_timeout_seconds=settings.telegram_poll_timeout_seconds,
    )
    me = await telegram.get_me()
    app.runtime.bot_name = me.first_name

    handler = MessageHandler(
        db=app.db,
        runtime=app.runtime,
        scheduler=app.scheduler,
        sender=telegram,
        max_context_messages=settings.max_context_messages,
    )
    app.scheduler.start()

    in_flight: set[asyncio.Task[None]] = set()
    LOGGER.info("Bot @%s running with provider %s", me.username, app.provider.name)
    try:
        async for event in telegram.poll_updates():
            task = asyncio.create_task(handler.handle(event))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
    finally:
        for task in in_flight:
            task.cancel()
        app.scheduler.shutdown()
        LOGGER.info("Shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    asyncio.run(run())


if __name__ == "__main__":
    main()
