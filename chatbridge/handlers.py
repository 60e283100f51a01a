"""Inbound turn entry point.

Gates which messages reach the model, keeps the session history, runs the
decide-and-act loop and stays quiet on failure in group chats.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Protocol

from chatbridge.agent_runtime import AgentRuntime, TurnOutcome
from chatbridge.db import Database
from chatbridge.models import InboundMessage, MembershipChange
from chatbridge.scheduler import ScheduledInvocationManager

LOGGER = logging.getLogger(__name__)

FALLBACK_REPLY = "I hit a snag processing that. Try again in a moment."


class MessageSender(Protocol):
    async def send_message(self, chat_id: str, text: str, reply_to_message_id: str | None = None) -> None: ...


class MessageHandler:
    """Routes normalized platform events into the runtime.

    Turns of the same chat are serialized with a per-chat lock so two
    messages arriving together cannot overwrite each other's session
    changes. Different chats proceed concurrently.
    """

    def __init__(
        self,
        db: Database,
        runtime: AgentRuntime,
        scheduler: ScheduledInvocationManager,
        sender: MessageSender,
        max_context_messages: int,
    ) -> None:
        self._db = db
        self._runtime = runtime
        self._scheduler = scheduler
        self._sender = sender
        self._max_context_messages = max_context_messages
        # Entries vanish once no turn holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def handle(self, event: InboundMessage | MembershipChange) -> None:
        if isinstance(event, MembershipChange):
            await self.handle_membership(event)
        else:
            await self.handle_message(event)

    async def handle_message(self, message: InboundMessage) -> TurnOutcome | None:
        if message.sender_is_bot:
            return None
        # Groups: only act when addressed.
        if message.is_group and not message.was_mentioned and not message.is_reply_to_bot:
            return None
        content = message.text or message.caption
        if not content and not message.image_url:
            return None

        async with self._lock_for(message.chat_id):
            session = self._db.load_session(message.chat_id)
            session.add_message("user", message.sender_name, content or "[image]", self._max_context_messages)
            try:
                return await self._runtime.decide_and_act(message, session)
            except Exception:  # noqa: BLE001
                LOGGER.exception("decide_and_act failed for chat %s", message.chat_id)
                if not message.is_group:
                    await self._send_fallback(message)
                return None
            finally:
                self._db.save_session(session)

    async def handle_membership(self, change: MembershipChange) -> None:
        async with self._lock_for(change.chat_id):
            if change.joined:
                self._db.reset_session(change.chat_id)
                LOGGER.info("Bot joined chat %s, session reset.", change.chat_id)
            elif change.removed:
                self._db.reset_session(change.chat_id)
                cancelled = self._scheduler.cancel_all(change.chat_id)
                LOGGER.info("Bot left chat %s, session and %d tasks reset.", change.chat_id, cancelled)

    async def _send_fallback(self, message: InboundMessage) -> None:
        try:
            await self._sender.send_message(
                message.chat_id, FALLBACK_REPLY, reply_to_message_id=message.message_id
            )
        except Exception:  # noqa: BLE001
            LOGGER.warning("Could not deliver fallback reply to chat %s", message.chat_id)

    def _lock_for(self, chat_id: str) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock
