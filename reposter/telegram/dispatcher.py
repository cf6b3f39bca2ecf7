"""Fan-out delivery of normalized posts to Telegram channels."""

from __future__ import annotations

import html
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aiogram.enums import ParseMode
from aiogram.types import InputMediaPhoto, InputMediaVideo

from reposter.exceptions import DeliveryError
from reposter.threads.base import MediaItem, MediaKind

if TYPE_CHECKING:
    from aiogram import Bot

logger = logging.getLogger(__name__)

EMPTY_TEXT_PLACEHOLDER = "(no text)"
MEDIA_CAPTION_LIMIT = 1024
TEXT_MESSAGE_LIMIT = 4096
MEDIA_GROUP_MAX = 10

InputMedia = InputMediaPhoto | InputMediaVideo


@dataclass
class DeliveryReport:
    """Outcome of delivering one post to every channel of a user."""

    delivered: list[str] = field(default_factory=list)
    failed: list[DeliveryError] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not self.delivered and bool(self.failed)


def escape_html(text: str) -> str:
    """Escape ``&``, ``<`` and ``>`` for Telegram's HTML parse mode."""
    return html.escape(text, quote=False)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def chat_ref(channel_id: str) -> int | str:
    """Numeric chat ids go out as integers, ``@username`` references as strings."""
    if channel_id.lstrip("-").isdigit():
        return int(channel_id)
    return channel_id


def build_media_group(caption: str, media: Sequence[MediaItem]) -> list[InputMedia]:
    """Build the media-group payload. Only index 0 carries the caption."""
    safe_caption = escape_html(truncate(caption, MEDIA_CAPTION_LIMIT))
    payload: list[InputMedia] = []
    for index, item in enumerate(media):
        media_cls = InputMediaVideo if item.kind is MediaKind.VIDEO else InputMediaPhoto
        if index == 0 and safe_caption.strip():
            payload.append(
                media_cls(media=item.url, caption=safe_caption, parse_mode=ParseMode.HTML)
            )
        else:
            payload.append(media_cls(media=item.url))
    return payload


def build_text_message(caption: str) -> str:
    """Escaped text for the text-only path, with a placeholder for empty posts."""
    safe_text = escape_html(truncate(caption, TEXT_MESSAGE_LIMIT))
    return safe_text if safe_text.strip() else EMPTY_TEXT_PLACEHOLDER


class ChannelDispatcher:
    """Deliver one logical message to many channels, isolating failures."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def deliver(
        self,
        channels: Sequence[str],
        caption: str,
        media: Sequence[MediaItem],
    ) -> DeliveryReport:
        """Send to every channel. Never raises for a per-channel failure."""
        report = DeliveryReport()
        for channel_id in channels:
            try:
                await self._send(channel_id, caption, media)
            except Exception as exc:
                error = DeliveryError(channel_id, f"{type(exc).__name__}: {exc}")
                logger.error("Error sending to channel %s: %s", channel_id, exc)
                report.failed.append(error)
            else:
                report.delivered.append(channel_id)
        return report

    async def _send(self, channel_id: str, caption: str, media: Sequence[MediaItem]) -> None:
        chat_id = chat_ref(channel_id)
        if not media:
            await self._bot.send_message(
                chat_id=chat_id, text=build_text_message(caption), parse_mode=ParseMode.HTML
            )
            return

        if len(media) == 1:
            # sendMediaGroup requires at least two items
            await self._send_single(chat_id, caption, media[0])
            return

        payload = build_media_group(caption, media)
        for start in range(0, len(payload), MEDIA_GROUP_MAX):
            chunk = payload[start : start + MEDIA_GROUP_MAX]
            if len(chunk) == 1:
                await self._send_single(chat_id, "", media[start])
            else:
                await self._bot.send_media_group(chat_id=chat_id, media=chunk)

    async def _send_single(self, chat_id: int | str, caption: str, item: MediaItem) -> None:
        safe_caption: str | None = escape_html(truncate(caption, MEDIA_CAPTION_LIMIT))
        if not safe_caption.strip():
            safe_caption = None
        parse_mode = ParseMode.HTML if safe_caption else None
        if item.kind is MediaKind.VIDEO:
            await self._bot.send_video(
                chat_id=chat_id, video=item.url, caption=safe_caption, parse_mode=parse_mode
            )
        else:
            await self._bot.send_photo(
                chat_id=chat_id, photo=item.url, caption=safe_caption, parse_mode=parse_mode
            )
