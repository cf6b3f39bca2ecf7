"""Telegram chat UI: onboarding commands, watermark dialog, channel tracking."""

from __future__ import annotations

import html
import logging
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from aiogram import Bot, F, Router
from aiogram.enums import ChatMemberStatus, ChatType, ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject, CommandStart, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import Chat, ChatMemberUpdated, Message

from reposter.services.account_service import (
    describe_user_status,
    get_or_create_user,
    set_sync_start_date,
)
from reposter.services.channel_service import delete_channels, upsert_channel
from reposter.services.crypto_service import sign_state
from reposter.services.datetime_service import format_date, parse_sync_date

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from reposter.config import Settings
    from reposter.services.account_service import UserStatus

logger = logging.getLogger(__name__)

AUTH_SUCCESS = "auth_success"
AUTH_ERROR = "auth_error"

WELCOME_TEXT = (
    "👋 Welcome! This bot reposts your Threads posts to your Telegram channels.\n\n"
    "1️⃣ Use /auth to connect your Threads account.\n"
    "2️⃣ Use /setsyncdate to set from which date to sync (YYYY-MM-DD).\n"
    "3️⃣ Add this bot as an admin to your Telegram channel.\n\n"
    "Start with /auth."
)
AUTH_SUCCESS_TEXT = (
    "✅ Successfully authenticated with Threads!\n\n"
    "Next: set your sync start date with /setsyncdate (e.g. 2024-01-01), then add this bot "
    "as an admin to your Telegram channel. New Threads posts will be reposted there "
    "automatically."
)
AUTH_ERROR_TEXT = "❌ Authentication failed. Please try again with /auth."
HELP_TEXT = (
    "📖 <b>Threads → Telegram Reposter</b>\n\n"
    "Reposts your Threads posts to Telegram channels where this bot is admin.\n\n"
    "<b>Commands:</b>\n"
    "/start – Check status\n"
    "/auth – Connect Threads account\n"
    "/setsyncdate – Set date to sync from (YYYY-MM-DD)\n"
    "/status – View config &amp; channels\n"
    "/cancel – Cancel the current dialog\n"
    "/help – This message\n\n"
    "<b>Setup:</b>\n"
    "1. /auth and open the link to connect Threads\n"
    "2. /setsyncdate and enter a date\n"
    "3. Add this bot as admin to your channel\n"
    "4. New posts are reposted every minute."
)
SYNC_DATE_PROMPT = (
    "📅 Please enter your sync start date in YYYY-MM-DD format.\n\n"
    "Example: 2024-01-01\n\n"
    "Posts created on or after this date will be synced to your Telegram channels."
)


class SyncDateForm(StatesGroup):
    waiting_for_date = State()


def channel_identity(chat: Chat) -> str:
    """Stable id for a chat: numeric for channels, @username when one exists otherwise."""
    if chat.type == ChatType.CHANNEL:
        return str(chat.id)
    if chat.username:
        return f"@{chat.username}"
    return str(chat.id)


def is_promotion(old_status: str, new_status: str) -> bool:
    return (
        new_status == ChatMemberStatus.ADMINISTRATOR
        and old_status != ChatMemberStatus.ADMINISTRATOR
    )


def is_demotion(old_status: str, new_status: str) -> bool:
    return (
        old_status == ChatMemberStatus.ADMINISTRATOR
        and new_status != ChatMemberStatus.ADMINISTRATOR
    )


def authorize_link(settings: Settings, telegram_id: int) -> str:
    state = sign_state(telegram_id, settings.secret_key)
    query = urlencode({"state": state})
    return f"{settings.base_url.rstrip('/')}/auth/threads/authorize?{query}"


def format_status(status: UserStatus) -> str:
    lines = ["📊 Your Status:", ""]
    lines.append(f"Threads User ID: {status.threads_user_id or 'N/A'}")
    if status.threads_username:
        lines.append(f"Threads Username: @{status.threads_username}")
    sync_from = format_date(status.sync_start_date) if status.sync_start_date else "Not set"
    lines.append(f"Sync Start Date: {sync_from}")
    if status.token_expires_at is not None:
        lines.append(f"Token Expires: {format_date(status.token_expires_at)}")
    lines.append(f"Status: {'🟢 Active' if status.is_active else '🔴 Inactive'}")
    lines.append(f"Channels: {len(status.channel_ids)}")
    if status.channel_ids:
        lines.append("")
        lines.append("📢 Your Channels:")
        lines.extend(f"  • {channel_id}" for channel_id in status.channel_ids)
    if status.blockers:
        lines.append("")
        lines.append("⚠️ Not syncing: " + ", ".join(status.blockers))
    return "\n".join(lines)


def format_summary(status: UserStatus) -> str:
    sync_from = format_date(status.sync_start_date) if status.sync_start_date else "Not set"
    return (
        "✅ You're set up.\n\n"
        f"📅 Sync from: {sync_from}\n"
        f"📢 Channels: {len(status.channel_ids)}\n\n"
        "Commands: /help | /status | /setsyncdate | /auth"
    )


def build_router(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> Router:
    """Create the bot router. Collaborators are captured, not global."""
    router = Router(name="reposter")

    @router.message(CommandStart())
    async def cmd_start(message: Message, command: CommandObject) -> None:
        if message.from_user is None:
            return
        telegram_id = message.from_user.id
        async with session_factory() as session:
            await get_or_create_user(session, telegram_id)
            payload = (command.args or "").strip()
            if payload == AUTH_SUCCESS:
                await message.answer(AUTH_SUCCESS_TEXT)
                return
            if payload == AUTH_ERROR:
                await message.answer(AUTH_ERROR_TEXT)
                return

            status = await describe_user_status(session, telegram_id)

        if status is None or status.threads_user_id is None:
            await message.answer(WELCOME_TEXT)
        elif status.sync_start_date is None:
            await message.answer(
                "✅ Threads connected.\n\n"
                "Set sync start date with /setsyncdate (e.g. 2024-01-01), then add this bot "
                "as an admin to your Telegram channel."
            )
        else:
            await message.answer(format_summary(status))

    @router.message(Command("help"))
    async def cmd_help(message: Message) -> None:
        await message.answer(HELP_TEXT, parse_mode=ParseMode.HTML)

    @router.message(Command("auth"))
    async def cmd_auth(message: Message) -> None:
        if message.from_user is None:
            return
        link = html.escape(authorize_link(settings, message.from_user.id))
        await message.answer(
            "🔐 To authenticate with Threads, please click the link below:\n\n"
            f'<a href="{link}">🔗 Authenticate with Threads</a>',
            parse_mode=ParseMode.HTML,
        )

    @router.message(Command("status"))
    async def cmd_status(message: Message) -> None:
        if message.from_user is None:
            return
        async with session_factory() as session:
            status = await describe_user_status(session, message.from_user.id)
        if status is None:
            await message.answer("❌ You are not registered. Use /start to get started.")
            return
        await message.answer(format_status(status))

    @router.message(Command("setsyncdate"))
    async def cmd_set_sync_date(message: Message, state: FSMContext) -> None:
        await state.set_state(SyncDateForm.waiting_for_date)
        await message.answer(SYNC_DATE_PROMPT)

    @router.message(Command("cancel"))
    async def cmd_cancel(message: Message, state: FSMContext) -> None:
        if await state.get_state() is None:
            await message.answer("Nothing to cancel.")
            return
        await state.clear()
        await message.answer("Cancelled.")

    @router.message(StateFilter(SyncDateForm.waiting_for_date), F.text)
    async def sync_date_entered(message: Message, state: FSMContext) -> None:
        if message.from_user is None or message.text is None:
            return
        try:
            sync_start = parse_sync_date(message.text)
        except ValueError as exc:
            await message.answer(f"❌ {exc}\n\nTry again or use /cancel to cancel.")
            return

        async with session_factory() as session:
            user = await set_sync_start_date(session, message.from_user.id, sync_start)
        await state.clear()
        if user is None:
            await message.answer("❌ User not found. Please use /start to get started.")
            return
        await message.answer(
            f"✅ Sync start date has been set to {format_date(sync_start)}!\n\n"
            "Your Threads posts will now be automatically synced to your Telegram channels."
        )

    @router.my_chat_member()
    async def bot_membership_changed(event: ChatMemberUpdated, bot: Bot) -> None:
        old_status = event.old_chat_member.status
        new_status = event.new_chat_member.status
        promoted = is_promotion(old_status, new_status)
        demoted = is_demotion(old_status, new_status)
        if not promoted and not demoted:
            return

        telegram_id = event.from_user.id
        channel_id = channel_identity(event.chat)
        async with session_factory() as session:
            user = await get_or_create_user(session, telegram_id)
            if promoted:
                await upsert_channel(session, user.id, channel_id, title=event.chat.title)
                notice = f"✅ Channel {channel_id} has been added! Posts will be synced to it."
            else:
                removed = await delete_channels(session, user.id, channel_id)
                if not removed:
                    return
                notice = f"ℹ️ Channel {channel_id} has been removed from syncing."

        try:
            await bot.send_message(chat_id=telegram_id, text=notice)
        except TelegramAPIError as exc:
            # The user may never have opened a private chat with the bot.
            logger.warning("Could not notify user %s about %s: %s", telegram_id, channel_id, exc)

    return router
