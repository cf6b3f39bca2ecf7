"""User records: lazy creation, watermark, eligibility."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from reposter.models.channel import Channel
from reposter.models.user import User
from reposter.services.datetime_service import format_datetime, now_utc, parse_stored_datetime

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {
        "threads_access_token",
        "threads_long_lived_token",
        "token_expires_at",
        "threads_user_id",
        "threads_username",
        "sync_start_date",
        "is_active",
    }
)


async def get_user_by_telegram_id(session: AsyncSession, telegram_id: int) -> User | None:
    stmt = select(User).where(User.telegram_id == telegram_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_or_create_user(session: AsyncSession, telegram_id: int) -> User:
    """Return the user for ``telegram_id``, creating an empty record on first contact."""
    user = await get_user_by_telegram_id(session, telegram_id)
    if user is not None:
        return user
    now = format_datetime(now_utc())
    user = User(telegram_id=telegram_id, is_active=False, created_at=now, updated_at=now)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Created user record for telegram id %s", telegram_id)
    return user


async def upsert_user(session: AsyncSession, telegram_id: int, **fields: Any) -> User:
    """Create or update a user, setting only the given fields.

    Does not commit; callers decide the transaction boundary.
    """
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        msg = f"Unknown user fields: {sorted(unknown)}"
        raise ValueError(msg)

    now = format_datetime(now_utc())
    user = await get_user_by_telegram_id(session, telegram_id)
    if user is None:
        user = User(telegram_id=telegram_id, is_active=False, created_at=now, updated_at=now)
        session.add(user)
    for name, value in fields.items():
        setattr(user, name, value)
    user.updated_at = now
    await session.flush()
    return user


async def set_sync_start_date(
    session: AsyncSession, telegram_id: int, sync_start: datetime
) -> User | None:
    """Store the watermark and activate the user. Returns None for unknown users."""
    user = await get_user_by_telegram_id(session, telegram_id)
    if user is None:
        return None
    user.sync_start_date = format_datetime(sync_start)
    user.is_active = True
    user.updated_at = format_datetime(now_utc())
    await session.commit()
    return user


async def find_eligible_users(
    session: AsyncSession, now: datetime | None = None
) -> list[User]:
    """Users the scheduler should process this cycle, channels preloaded.

    Eligible means: active, long-lived token present, watermark set, token
    not expired and at least one channel.
    """
    cutoff = format_datetime(now or now_utc())
    stmt = (
        select(User)
        .where(
            User.is_active.is_(True),
            User.threads_long_lived_token.is_not(None),
            User.sync_start_date.is_not(None),
            User.token_expires_at.is_not(None),
            User.token_expires_at > cutoff,
            User.channels.any(),
        )
        .options(selectinload(User.channels))
        .order_by(User.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@dataclass
class UserStatus:
    """Read model for ``/status`` and the management CLI."""

    telegram_id: int
    threads_user_id: str | None
    threads_username: str | None
    sync_start_date: datetime | None
    token_expires_at: datetime | None
    is_active: bool
    channel_ids: list[str] = field(default_factory=list)
    blockers: list[str] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return not self.blockers


def eligibility_blockers(
    user: User, channel_count: int, now: datetime | None = None
) -> list[str]:
    """Reasons a user is excluded from synchronization (empty when eligible)."""
    blockers: list[str] = []
    if not user.is_active:
        blockers.append("inactive")
    if not user.threads_long_lived_token:
        blockers.append("Threads account not connected")
    if user.token_expires_at is None or user.token_expires_at <= format_datetime(
        now or now_utc()
    ):
        blockers.append("Threads token expired")
    if not user.sync_start_date:
        blockers.append("sync start date not set")
    if channel_count == 0:
        blockers.append("no channels")
    return blockers


async def describe_user_status(
    session: AsyncSession, telegram_id: int, now: datetime | None = None
) -> UserStatus | None:
    stmt = (
        select(User)
        .where(User.telegram_id == telegram_id)
        .options(selectinload(User.channels))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None:
        return None
    channels: list[Channel] = sorted(user.channels, key=lambda ch: ch.id)
    return UserStatus(
        telegram_id=user.telegram_id,
        threads_user_id=user.threads_user_id,
        threads_username=user.threads_username,
        sync_start_date=(
            parse_stored_datetime(user.sync_start_date) if user.sync_start_date else None
        ),
        token_expires_at=(
            parse_stored_datetime(user.token_expires_at) if user.token_expires_at else None
        ),
        is_active=user.is_active,
        channel_ids=[ch.channel_id for ch in channels],
        blockers=eligibility_blockers(user, len(channels), now),
    )
