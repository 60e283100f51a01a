import asyncio
import gc
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.agent_runtime import TurnOutcome
from chatbridge.db import Database
from chatbridge.errors import ProviderError
from chatbridge.handlers import FALLBACK_REPLY, MessageHandler
from chatbridge.models import ChatSession, InboundMessage, MembershipChange


def _message(chat_type: str = "private", **overrides) -> InboundMessage:
    values = dict(
        chat_id="chat-1",
        chat_type=chat_type,
        sender_id="42",
        sender_name="Ana",
        message_id="7",
        text="hello bot",
    )
    values.update(overrides)
    return InboundMessage(**values)


def _handler(tmp_path, runtime: MagicMock | None = None, scheduler: MagicMock | None = None):
    db = Database(tmp_path / "chatbridge.db")
    db.initialize()
    if runtime is None:
        runtime = MagicMock()
        runtime.decide_and_act = AsyncMock(return_value=TurnOutcome(rounds=1))
    sender = MagicMock()
    sender.send_message = AsyncMock()
    handler = MessageHandler(
        db=db,
        runtime=runtime,
        scheduler=scheduler or MagicMock(),
        sender=sender,
        max_context_messages=10,
    )
    return handler, db, runtime, sender


@pytest.mark.asyncio
async def test_direct_message_runs_turn_and_saves_history(tmp_path):
    handler, db, runtime, _ = _handler(tmp_path)

    await handler.handle(_message())

    runtime.decide_and_act.assert_awaited_once()
    assert [m.content for m in db.load_session("chat-1").messages] == ["hello bot"]


@pytest.mark.asyncio
async def test_group_message_without_mention_is_ignored(tmp_path):
    handler, db, runtime, _ = _handler(tmp_path)

    result = await handler.handle_message(_message("group"))

    assert result is None
    runtime.decide_and_act.assert_not_awaited()
    assert db.load_session("chat-1").messages == []


@pytest.mark.asyncio
@pytest.mark.parametrize("flags", [{"was_mentioned": True}, {"is_reply_to_bot": True}])
async def test_group_message_addressed_to_bot_is_handled(tmp_path, flags):
    handler, _, runtime, _ = _handler(tmp_path)

    outcome = await handler.handle_message(_message("supergroup", **flags))

    runtime.decide_and_act.assert_awaited_once()
    assert outcome.rounds == 1


@pytest.mark.asyncio
async def test_messages_from_bots_are_ignored(tmp_path):
    handler, _, runtime, _ = _handler(tmp_path)

    await handler.handle_message(_message(sender_is_bot=True))

    runtime.decide_and_act.assert_not_awaited()


@pytest.mark.asyncio
async def test_failure_in_direct_chat_sends_fallback(tmp_path):
    runtime = MagicMock()
    runtime.decide_and_act = AsyncMock(side_effect=ProviderError("openai", "HTTP 500"))
    handler, db, _, sender = _handler(tmp_path, runtime=runtime)

    result = await handler.handle_message(_message())

    assert result is None
    sender.send_message.assert_awaited_once_with("chat-1", FALLBACK_REPLY, reply_to_message_id="7")
    assert db.load_session("chat-1").messages[0].content == "hello bot"


@pytest.mark.asyncio
async def test_failure_in_group_stays_silent(tmp_path):
    runtime = MagicMock()
    runtime.decide_and_act = AsyncMock(side_effect=ProviderError("openai", "HTTP 500"))
    handler, _, _, sender = _handler(tmp_path, runtime=runtime)

    await handler.handle_message(_message("group", was_mentioned=True))

    sender.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_delivery_failure_is_swallowed(tmp_path):
    runtime = MagicMock()
    runtime.decide_and_act = AsyncMock(side_effect=RuntimeError("boom"))
    handler, _, _, sender = _handler(tmp_path, runtime=runtime)
    sender.send_message = AsyncMock(side_effect=RuntimeError("telegram down"))

    assert await handler.handle_message(_message()) is None


@pytest.mark.asyncio
async def test_session_changes_from_tools_are_persisted(tmp_path):
    async def set_language(message: InboundMessage, session: ChatSession) -> TurnOutcome:
        session.config.language = "Spanish"
        return TurnOutcome(rounds=1)

    runtime = MagicMock()
    runtime.decide_and_act = set_language
    handler, db, _, _ = _handler(tmp_path, runtime=runtime)

    await handler.handle_message(_message())

    assert db.load_session("chat-1").config.language == "Spanish"


@pytest.mark.asyncio
async def test_turns_in_one_chat_do_not_overlap(tmp_path):
    active = 0
    peak = 0

    async def slow_turn(message: InboundMessage, session: ChatSession) -> TurnOutcome:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.02)
        active -= 1
        return TurnOutcome(rounds=1)

    runtime = MagicMock()
    runtime.decide_and_act = slow_turn
    handler, db, _, _ = _handler(tmp_path, runtime=runtime)

    await asyncio.gather(
        handler.handle_message(_message(text="one")),
        handler.handle_message(_message(text="two", message_id="8")),
    )

    assert peak == 1
    assert sorted(m.content for m in db.load_session("chat-1").messages) == ["one", "two"]


@pytest.mark.asyncio
async def test_bot_removed_resets_session_and_cancels_tasks(tmp_path):
    scheduler = MagicMock()
    scheduler.cancel_all.return_value = 2
    handler, db, _, _ = _handler(tmp_path, scheduler=scheduler)
    await handler.handle_message(_message())

    await handler.handle(MembershipChange(chat_id="chat-1", old_status="member", new_status="kicked"))

    scheduler.cancel_all.assert_called_once_with("chat-1")
    assert db.load_session("chat-1").messages == []


@pytest.mark.asyncio
async def test_bot_joined_resets_session_only(tmp_path):
    scheduler = MagicMock()
    handler, db, _, _ = _handler(tmp_path, scheduler=scheduler)
    await handler.handle_message(_message())

    await handler.handle(MembershipChange(chat_id="chat-1", old_status="left", new_status="member"))

    scheduler.cancel_all.assert_not_called()
    assert db.load_session("chat-1").messages == []


@pytest.mark.asyncio
async def test_chat_locks_are_released_after_turns(tmp_path):
    handler, _, _, _ = _handler(tmp_path)

    for chat_id in ("chat-1", "chat-2", "chat-3"):
        await handler.handle_message(_message(chat_id=chat_id))
    await handler.handle(MembershipChange(chat_id="chat-1", old_status="member", new_status="left"))
    gc.collect()

    assert len(handler._locks) == 0
