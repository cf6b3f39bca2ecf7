"""Processed-post history: the per-user idempotency set."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from reposter.exceptions import DuplicateError
from reposter.models.processed_post import ProcessedPost
from reposter.services.datetime_service import format_datetime, now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def load_processed_ids(session: AsyncSession, user_id: int) -> set[str]:
    """All Threads post ids already handled for a user."""
    stmt = select(ProcessedPost.threads_post_id).where(ProcessedPost.user_id == user_id)
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def record_processed(session: AsyncSession, post_id: str, user_id: int) -> ProcessedPost:
    """Append a processed-post record.

    Raises:
        DuplicateError: if the (post, user) pair is already recorded. The
            session is rolled back and stays usable.
    """
    record = ProcessedPost(
        threads_post_id=post_id,
        user_id=user_id,
        created_at=format_datetime(now_utc()),
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        msg = f"Post {post_id} already recorded for user {user_id}"
        raise DuplicateError(msg) from exc
    return record
