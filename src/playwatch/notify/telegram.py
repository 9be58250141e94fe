"""Telegram Bot API notifier using httpx.

Endpoints:
- POST /bot<token>/sendMessage (HTML parse mode, plain-text fallback)
- POST /bot<token>/sendPhoto
"""

from __future__ import annotations

import asyncio
from datetime import tzinfo

import httpx
import structlog

from playwatch.config import TelegramConfig
from playwatch.notify.formatting import Message, render_events, split_message, strip_tags
from playwatch.tracker.events import ChangeEvent

log = structlog.get_logger(__name__)

_API_BASE = "https://api.telegram.org"
_CHUNK_PAUSE = 0.1  # seconds between parts of one message


class NotifyError(Exception):
    """Raised when a notification could not be delivered."""


class TelegramNotifier:
    """Delivers rendered change events to a single Telegram chat."""

    def __init__(
        self,
        config: TelegramConfig,
        tz: tzinfo,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._tz = tz
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TelegramNotifier:
        kw: dict = {"timeout": 30.0}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, method: str) -> str:
        return f"{_API_BASE}/bot{self._config.bot_token.get_secret_value()}/{method}"

    async def _post(self, method: str, payload: dict) -> None:
        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.post(self._url(method), json=payload)
        except httpx.TransportError as exc:
            raise NotifyError(f"Telegram {method} failed: {exc}") from exc
        if resp.status_code != 200:
            raise NotifyError(f"Telegram {method} failed: {resp.status_code} {resp.text}")

    async def send_message(self, text: str) -> None:
        """Send *text* (HTML), split into numbered parts when too long.

        A part rejected in HTML mode is retried once as plain text.
        """
        chunks = split_message(text)
        for index, chunk in enumerate(chunks):
            if len(chunks) > 1:
                chunk = f"<b>Part {index + 1}/{len(chunks)}:</b>\n\n{chunk}"

            payload = {
                "chat_id": self._config.chat_id,
                "text": chunk,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            }
            try:
                await self._post("sendMessage", payload)
            except NotifyError as exc:
                log.warning("telegram_html_rejected", part=index + 1, error=str(exc))
                await self._post(
                    "sendMessage",
                    {
                        "chat_id": self._config.chat_id,
                        "text": strip_tags(chunk),
                        "disable_web_page_preview": True,
                    },
                )

            if index < len(chunks) - 1:
                await asyncio.sleep(_CHUNK_PAUSE)

    async def send_photo(self, photo_url: str, caption: str | None = None) -> None:
        payload: dict = {"chat_id": self._config.chat_id, "photo": photo_url}
        if caption:
            payload["caption"] = caption
            payload["parse_mode"] = "HTML"
        await self._post("sendPhoto", payload)

    async def deliver(self, message: Message) -> None:
        await self.send_message(message.text)
        if message.photo_url:
            await self.send_photo(message.photo_url, message.photo_caption)

    async def notify(self, events: list[ChangeEvent]) -> int:
        """Deliver *events* in order.  Returns the number of messages delivered.

        Failures are logged and skipped so one bad message does not hold back
        the rest.
        """
        sent = 0
        for message in render_events(events, self._tz):
            try:
                await self.deliver(message)
                sent += 1
            except NotifyError as exc:
                log.warning("notification_failed", error=str(exc))
        return sent
