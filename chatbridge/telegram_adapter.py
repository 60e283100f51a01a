"""Telegram Bot API adapter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import httpx

from chatbridge.models import InboundMessage, MembershipChange

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BotIdentity:
    id: str
    username: str
    first_name: str


class TelegramAdapter:
    """Long-polling client for the handful of Bot API methods the bot needs.

    Replies in normal operation go through the Telegram MCP server; this
    adapter only receives updates and sends the fallback message.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        poll_timeout_seconds: int = 30,
        retry_delay_seconds: float = 5.0,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._poll_timeout_seconds = poll_timeout_seconds
        self._retry_delay_seconds = retry_delay_seconds
        self._offset: int | None = None
        self.me: BotIdentity | None = None

    async def get_me(self) -> BotIdentity:
        data = await self._call("getMe")
        self.me = BotIdentity(
            id=str(data["id"]),
            username=data.get("username") or "",
            first_name=data.get("first_name") or "Bot",
        )
        return self.me

    async def poll_updates(self) -> AsyncIterator[InboundMessage | MembershipChange]:
        """Poll getUpdates forever and yield normalized events."""

        me = self.me or await self.get_me()
        while True:
            params: dict[str, Any] = {
                "timeout": self._poll_timeout_seconds,
                "allowed_updates": ["message", "my_chat_member"],
            }
            if self._offset is not None:
                params["offset"] = self._offset
            try:
                updates = await self._call(
                    "getUpdates", request_timeout=self._poll_timeout_seconds + 10, **params
                )
            except (httpx.HTTPError, RuntimeError) as exc:
                LOGGER.warning("Telegram getUpdates failed: %s", exc)
                await asyncio.sleep(self._retry_delay_seconds)
                continue

            for update in updates:
                self._offset = int(update["update_id"]) + 1
                try:
                    event = _to_event(update, me)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping malformed update %s", update.get("update_id"))
                    continue
                if event is None:
                    continue
                if isinstance(event, InboundMessage):
                    file_id = _largest_photo_file_id(update.get("message") or {})
                    if file_id:
                        event.image_url = await self._file_url(file_id)
                yield event

    async def send_message(self, chat_id: str, text: str, reply_to_message_id: str | None = None) -> None:
        """Send a plain text message."""

        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id is not None:
            params["reply_parameters"] = {"message_id": int(reply_to_message_id)}
        await self._call("sendMessage", **params)

    async def _file_url(self, file_id: str) -> str | None:
        try:
            data = await self._call("getFile", file_id=file_id)
        except (httpx.HTTPError, RuntimeError) as exc:
            LOGGER.warning("Could not resolve Telegram file %s: %s", file_id, exc)
            return None
        file_path = data.get("file_path")
        return f"{self._base_url}/file/bot{self._token}/{file_path}" if file_path else None

    async def _call(self, method: str, request_timeout: float = 30.0, **params: Any) -> Any:
        async with httpx.AsyncClient(timeout=httpx.Timeout(request_timeout)) as client:
            response = await client.post(f"{self._base_url}/bot{self._token}/{method}", json=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise RuntimeError(f"Telegram {method} returned non-JSON (HTTP {response.status_code})") from exc
        if not data.get("ok"):
            raise RuntimeError(f"Telegram {method} failed: {data.get('description', response.status_code)}")
        return data["result"]


def _to_event(update: dict[str, Any], me: BotIdentity) -> InboundMessage | MembershipChange | None:
    member_update = update.get("my_chat_member")
    if isinstance(member_update, dict):
        return MembershipChange(
            chat_id=str(member_update["chat"]["id"]),
            old_status=member_update["old_chat_member"]["status"],
            new_status=member_update["new_chat_member"]["status"],
        )

    message = update.get("message")
    if not isinstance(message, dict):
        return None

    chat = message["chat"]
    sender = message.get("from") or {}
    text = message.get("text") or ""
    caption = message.get("caption") or ""
    addressed = text or caption
    reply = message.get("reply_to_message") or {}
    reply_from = reply.get("from") or {}

    return InboundMessage(
        chat_id=str(chat["id"]),
        chat_type=chat.get("type", "private"),
        chat_title=chat.get("title") or "",
        sender_id=str(sender.get("id", "")),
        sender_name=_display_name(sender),
        sender_username=sender.get("username") or "",
        sender_is_bot=bool(sender.get("is_bot")),
        message_id=str(message["message_id"]),
        text=text,
        caption=caption,
        was_mentioned=bool(me.username) and f"@{me.username}" in addressed,
        is_reply_to_bot=bool(reply_from.get("is_bot")) and reply_from.get("username") == me.username,
        timestamp=datetime.fromtimestamp(int(message.get("date") or 0), tz=timezone.utc),
    )


def _display_name(sender: dict[str, Any]) -> str:
    name = " ".join(part for part in (sender.get("first_name"), sender.get("last_name")) if part)
    return name or "Unknown"


def _largest_photo_file_id(message: dict[str, Any]) -> str | None:
    photos = message.get("photo")
    if not isinstance(photos, list) or not photos:
        return None
    largest = max(photos, key=lambda p: p.get("file_size") or p.get("width", 0) * p.get("height", 0))
    return largest.get("file_id")
