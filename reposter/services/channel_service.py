"""Destination channels owned by a user."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from reposter.models.channel import Channel
from reposter.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def list_channels(session: AsyncSession, user_id: int) -> list[Channel]:
    """List all channels for a user in registration order."""
    stmt = select(Channel).where(Channel.owner_id == user_id).order_by(Channel.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_channels(session: AsyncSession, user_id: int) -> int:
    stmt = select(func.count()).select_from(Channel).where(Channel.owner_id == user_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def _find_channel(session: AsyncSession, user_id: int, channel_id: str) -> Channel | None:
    stmt = select(Channel).where(Channel.owner_id == user_id, Channel.channel_id == channel_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_channel(
    session: AsyncSession,
    user_id: int,
    channel_id: str,
    title: str | None = None,
) -> Channel:
    """Register a channel for a user. Idempotent on (channel_id, owner)."""
    existing = await _find_channel(session, user_id, channel_id)
    if existing is not None:
        if title and existing.title != title:
            existing.title = title
            await session.commit()
        return existing

    channel = Channel(
        channel_id=channel_id,
        owner_id=user_id,
        title=title,
        created_at=format_datetime(now_utc()),
    )
    session.add(channel)
    try:
        await session.commit()
    except IntegrityError:
        # Concurrent promotion events for the same chat.
        await session.rollback()
        existing = await _find_channel(session, user_id, channel_id)
        if existing is None:
            raise
        return existing
    await session.refresh(channel)
    logger.info("Channel %s registered for user %s", channel_id, user_id)
    return channel


async def delete_channels(session: AsyncSession, user_id: int, channel_id: str) -> int:
    """Remove a user's registration of a channel. Returns the number removed."""
    stmt = delete(Channel).where(Channel.owner_id == user_id, Channel.channel_id == channel_id)
    result = await session.execute(stmt)
    await session.commit()
    removed = int(result.rowcount or 0)
    if removed:
        logger.info("Channel %s removed for user %s", channel_id, user_id)
    return removed
