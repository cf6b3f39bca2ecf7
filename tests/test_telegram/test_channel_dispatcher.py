"""Tests for fan-out delivery to Telegram channels."""

from __future__ import annotations

from unittest.mock import AsyncMock

from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramForbiddenError
from aiogram.methods import SendMessage
from aiogram.types import InputMediaPhoto, InputMediaVideo

from reposter.exceptions import DeliveryError
from reposter.telegram.dispatcher import (
    EMPTY_TEXT_PLACEHOLDER,
    MEDIA_CAPTION_LIMIT,
    ChannelDispatcher,
    build_media_group,
    build_text_message,
    chat_ref,
    escape_html,
    truncate,
)
from reposter.threads.base import MediaItem, MediaKind

PHOTO = MediaItem(MediaKind.PHOTO, "https://cdn/p.jpg")
VIDEO = MediaItem(MediaKind.VIDEO, "https://cdn/v.mp4")


class TestFormatting:
    def test_escape_html(self) -> None:
        assert escape_html('a < b & c > "d"') == 'a &lt; b &amp; c &gt; "d"'

    def test_truncate_adds_ellipsis(self) -> None:
        assert truncate("abcdef", 4) == "abc…"
        assert truncate("abc", 4) == "abc"

    def test_truncate_happens_before_escaping(self) -> None:
        caption = "&" * (MEDIA_CAPTION_LIMIT + 10)
        payload = build_media_group(caption, [PHOTO, PHOTO])
        assert payload[0].caption == "&amp;" * (MEDIA_CAPTION_LIMIT - 1) + "…"

    def test_text_message_placeholder(self) -> None:
        assert build_text_message("") == EMPTY_TEXT_PLACEHOLDER
        assert build_text_message("<b>") == "&lt;b&gt;"

    def test_whitespace_only_text_uses_placeholder(self) -> None:
        assert build_text_message(" \n\t ") == EMPTY_TEXT_PLACEHOLDER

    def test_chat_ref(self) -> None:
        assert chat_ref("-1001234") == -1001234
        assert chat_ref("@news") == "@news"


class TestBuildMediaGroup:
    def test_caption_only_on_first_item(self) -> None:
        payload = build_media_group("Tom & Jerry", [PHOTO, VIDEO, PHOTO])

        kinds = [type(item) for item in payload]
        assert kinds == [InputMediaPhoto, InputMediaVideo, InputMediaPhoto]
        assert payload[0].caption == "Tom &amp; Jerry"
        assert payload[0].parse_mode == ParseMode.HTML
        assert all(item.caption is None for item in payload[1:])

    def test_empty_caption_leaves_first_item_bare(self) -> None:
        payload = build_media_group("", [PHOTO, VIDEO])
        assert payload[0].caption is None

    def test_whitespace_caption_leaves_first_item_bare(self) -> None:
        payload = build_media_group("  \n", [PHOTO, VIDEO])
        assert payload[0].caption is None


class TestChannelDispatcher:
    async def test_text_post_sent_as_message(self) -> None:
        bot = AsyncMock()

        report = await ChannelDispatcher(bot).deliver(["-1001"], "1 < 2", [])

        bot.send_message.assert_awaited_once_with(
            chat_id=-1001, text="1 &lt; 2", parse_mode=ParseMode.HTML
        )
        assert report.delivered == ["-1001"]
        assert report.failed == []

    async def test_empty_text_post_uses_placeholder(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["@news"], "", [])

        assert bot.send_message.await_args.kwargs["text"] == "(no text)"
        assert bot.send_message.await_args.kwargs["chat_id"] == "@news"

    async def test_single_photo_sent_directly(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["-1"], "hi", [PHOTO])

        bot.send_photo.assert_awaited_once_with(
            chat_id=-1, photo=PHOTO.url, caption="hi", parse_mode=ParseMode.HTML
        )
        bot.send_media_group.assert_not_awaited()

    async def test_single_video_sent_directly(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["-1"], "", [VIDEO])

        bot.send_video.assert_awaited_once_with(
            chat_id=-1, video=VIDEO.url, caption=None, parse_mode=None
        )

    async def test_whitespace_post_sends_placeholder(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["-1"], "   \n ", [])

        assert bot.send_message.await_args.kwargs["text"] == EMPTY_TEXT_PLACEHOLDER

    async def test_single_photo_with_whitespace_caption_sent_bare(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["-1"], " \n", [PHOTO])

        bot.send_photo.assert_awaited_once_with(
            chat_id=-1, photo=PHOTO.url, caption=None, parse_mode=None
        )

    async def test_carousel_sent_as_one_group(self) -> None:
        bot = AsyncMock()

        await ChannelDispatcher(bot).deliver(["-1"], "album", [PHOTO, VIDEO])

        bot.send_media_group.assert_awaited_once()
        media = bot.send_media_group.await_args.kwargs["media"]
        assert [item.media for item in media] == [PHOTO.url, VIDEO.url]

    async def test_more_than_ten_items_are_chunked(self) -> None:
        bot = AsyncMock()
        media = [MediaItem(MediaKind.PHOTO, f"https://cdn/{i}.jpg") for i in range(11)]

        await ChannelDispatcher(bot).deliver(["-1"], "big album", media)

        assert bot.send_media_group.await_count == 1
        group = bot.send_media_group.await_args.kwargs["media"]
        assert len(group) == 10
        assert group[0].caption == "big album"
        bot.send_photo.assert_awaited_once_with(
            chat_id=-1, photo="https://cdn/10.jpg", caption=None, parse_mode=None
        )

    async def test_failing_channel_does_not_block_others(self) -> None:
        bot = AsyncMock()
        bot.send_message.side_effect = [
            None,
            TelegramForbiddenError(
                method=SendMessage(chat_id=-2, text="x"),
                message="Forbidden: bot is not a member of the channel chat",
            ),
            None,
        ]

        report = await ChannelDispatcher(bot).deliver(["-1", "-2", "-3"], "hello", [])

        assert bot.send_message.await_count == 3
        assert report.delivered == ["-1", "-3"]
        assert len(report.failed) == 1
        assert isinstance(report.failed[0], DeliveryError)
        assert report.failed[0].channel_id == "-2"
        assert not report.all_failed

    async def test_all_failed(self) -> None:
        bot = AsyncMock()
        bot.send_message.side_effect = RuntimeError("network down")

        report = await ChannelDispatcher(bot).deliver(["-1", "-2"], "hello", [])

        assert report.delivered == []
        assert report.all_failed
        assert "network down" in report.failed[0].reason

    async def test_no_channels_sends_nothing(self) -> None:
        bot = AsyncMock()

        report = await ChannelDispatcher(bot).deliver([], "hello", [PHOTO])

        assert bot.mock_calls == []
        assert not report.all_failed
