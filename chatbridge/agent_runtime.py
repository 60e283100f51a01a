"""Core agent runtime: the decide-and-act loop."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from chatbridge.errors import ProviderError
from chatbridge.llm.base import LLMProvider
from chatbridge.models import (
    SEND_MESSAGE_ACTION,
    ChatMessage,
    ChatSession,
    ImagePart,
    InboundMessage,
    LLMResponse,
    ScheduledTask,
    TextPart,
    ToolDeclaration,
    ToolResult,
    Turn,
)
from chatbridge.tools.base import ToolContext
from chatbridge.tools.config_tools import format_config_for_prompt
from chatbridge.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = " ".join(
    [
        "You are a Telegram bot assistant controlling actions through tools.",
        "If user mentions the bot, answer their request.",
        "You can see and understand images that users send. When a user sends an image, analyze it and "
        "respond appropriately to any questions or requests about it.",
        "Never spam. Never respond to unrelated conversation. Be funny, be cool.",
        "Use the Telegram MCP server tool to interact with Telegram if you need to. Always call sendMessage "
        "in order to reply or acknowledge, your text output will NOT be sent automatically.",
        "If using Telegram MCP sendMessage, don't provide a parse_mode.",
        "You can schedule tasks using the schedule_task tool. For recurring tasks, use cron expressions. "
        "For one-time tasks, use ISO 8601 date strings. Use the prompt field to prompt yourself - don't be "
        "too prescriptive, it's fine to have logic there.",
        "Use web search whenever you're unsure about something - confirm your answers with reliable "
        "sources before you respond.",
        "You can configure per-chat settings using get_config, set_config, and reset_config. Use these "
        "when users want to customize how you behave in their chat.",
        "You can save notes, to-do items, or any context the user wants you to remember using add_note, "
        "list_notes, remove_note, and clear_notes. Notes are organized by keys/categories (e.g., "
        "'shopping list', 'todos', 'birthdays'). Use these when users ask you to remember something, "
        "manage lists, or recall saved information.",
    ]
)

SCHEDULED_SYSTEM_PROMPT = " ".join(
    [
        "You are a Telegram bot executing a scheduled task.",
        "The user scheduled this prompt to run at this time.",
        "Execute the prompt and provide a helpful response.",
        "Keep your response concise.",
        "Use the Telegram MCP server tool to send messages - use sendMessage to send the response to the chat.",
        "If using Telegram MCP sendMessage, don't provide a parse_mode.",
    ]
)


@dataclass(slots=True)
class TurnOutcome:
    """What one decide-and-act turn did."""

    tool_calls_made: int = 0
    rounds: int = 0
    sent_messages: list[str] = field(default_factory=list)
    final_text: str | None = None
    budget_exceeded: bool = False


class AgentRuntime:
    """Drives the model through tool calls until it settles on a final action."""

    def __init__(
        self,
        llm: LLMProvider,
        tool_registry: ToolRegistry,
        catalog: list[ToolDeclaration],
        scheduled_catalog: list[ToolDeclaration],
        max_tool_calls: int,
        max_context_messages: int,
        request_timeout_seconds: float,
        bot_name: str = "Bot",
    ) -> None:
        self._llm = llm
        self._tool_registry = tool_registry
        self._catalog = catalog
        self._scheduled_catalog = scheduled_catalog
        self._max_tool_calls = max_tool_calls
        self._max_context_messages = max_context_messages
        self._request_timeout_seconds = request_timeout_seconds
        self.bot_name = bot_name

    async def decide_and_act(self, message: InboundMessage, session: ChatSession) -> TurnOutcome:
        """Run one conversational turn for ``message``.

        Function calls are dispatched sequentially in the order the model
        returned them. Once more than ``max_tool_calls`` calls have run the
        loop stops asking the model and finalizes with the last response.
        Provider failures propagate to the caller.
        """

        current_input = [
            Turn(role="system", content=self._build_system_prompt(session)),
            Turn(role="user", content=self._build_user_content(message, session)),
        ]
        context = ToolContext(chat_id=message.chat_id, session=session, caller=message.sender_name)
        outcome = TurnOutcome()

        while True:
            response = await self._complete(current_input, self._catalog)
            outcome.rounds += 1
            function_calls = response.function_calls
            if not function_calls:
                break

            tool_results: list[ToolResult] = []
            for call in function_calls:
                outcome.tool_calls_made += 1
                result = await self._tool_registry.dispatch(call.name, call.arguments, context)
                tool_results.append(ToolResult(call_id=call.id, output=result))

            current_input = self._llm.build_next_input(current_input, response, tool_results)
            if outcome.tool_calls_made > self._max_tool_calls:
                LOGGER.warning("Maximum number of tools called (%d) reached.", outcome.tool_calls_made)
                outcome.budget_exceeded = True
                break

        outcome.final_text = response.text
        outcome.sent_messages = self._record_sent_messages(response, session)
        if response.is_empty:
            LOGGER.info("Model chose to do nothing for chat %s", message.chat_id)
        return outcome

    async def run_scheduled(self, task: ScheduledTask) -> LLMResponse:
        """Execute a scheduled prompt with a single model call."""

        current_input = [
            Turn(role="system", content=SCHEDULED_SYSTEM_PROMPT),
            Turn(role="user", content=f"Scheduled prompt for chat {task.chat_id}: {task.prompt}"),
        ]
        response = await self._complete(current_input, self._scheduled_catalog)
        if response.tool_calls:
            LOGGER.info("Scheduled task %s made %d tool calls", task.id, len(response.tool_calls))
        if response.text:
            LOGGER.info("Scheduled task %s response: %s", task.id, response.text)
        return response

    async def _complete(self, current_input: list[Turn], tools: list[ToolDeclaration]) -> LLMResponse:
        try:
            return await asyncio.wait_for(
                self._llm.complete(current_input, tools),
                timeout=self._request_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(self._llm.name, f"no response within {self._request_timeout_seconds}s") from exc

    def _record_sent_messages(self, response: LLMResponse, session: ChatSession) -> list[str]:
        sent = [tc for tc in response.capability_calls if tc.name == SEND_MESSAGE_ACTION]
        LOGGER.info("Found %d messages to send", len(sent))
        texts: list[str] = []
        for call in sent:
            try:
                text = str(json.loads(call.arguments).get("text") or "")
            except (json.JSONDecodeError, AttributeError):
                continue
            session.add_message("assistant", self.bot_name, text, self._max_context_messages)
            texts.append(text)
        return texts

    def _build_system_prompt(self, session: ChatSession) -> str:
        parts = [BASE_SYSTEM_PROMPT]
        config_prompt = format_config_for_prompt(session.config)
        if config_prompt:
            parts.append(f"\n\n{config_prompt}")
        if session.notes:
            notes_context = "\n".join(
                f"{key}:\n" + "\n".join(f"  - {n.content}" for n in items)
                for key, items in session.notes.items()
            )
            parts.append(f"\n\nSaved notes/context for this chat:\n{notes_context}")
        parts.append(f"\n\nThis is the current date if you need it: {datetime.now(timezone.utc).isoformat()}")
        return "".join(parts)

    def _build_user_content(self, message: InboundMessage, session: ChatSession) -> str | list[TextPart | ImagePart]:
        header = "\n".join(
            [
                f"chat_id={message.chat_id} chat_type={message.chat_type} chat_title={message.chat_title}",
                f"from={message.sender_name} (@{message.sender_username})",
                f"message_id={message.message_id}",
                f"text={message.text}",
                f"caption={message.caption}",
                f"was_mentioned={str(message.was_mentioned).lower()}",
                f"is_reply_to_bot={str(message.is_reply_to_bot).lower()}",
                "",
                "--- Recent conversation history ---",
                format_history(session.messages),
                "--- End of history ---",
            ]
        )
        if message.image_url:
            return [TextPart(header), ImagePart(url=message.image_url, detail="auto")]
        return header


def format_history(messages: list[ChatMessage]) -> str:
    if not messages:
        return "No previous messages in this conversation."
    return "\n".join(f"[{m.role}] {m.name}: {m.content}" for m in messages)
