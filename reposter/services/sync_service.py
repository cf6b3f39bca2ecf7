"""Sync pipeline: fetch new Threads posts and mirror them into Telegram channels.

One cycle selects every eligible user and, for each, runs
fetch -> filter -> (normalize -> deliver -> record) per admitted post in
ascending timestamp order. Failures are isolated per channel (dispatcher),
per post and per user; nothing escapes a cycle.

Delivery is at-least-once: a post is recorded only after delivery was
attempted, so a crash between the two re-delivers it on the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from reposter.exceptions import DuplicateError, IneligibleUserError, UpstreamFetchError
from reposter.services.account_service import find_eligible_users
from reposter.services.channel_service import list_channels
from reposter.services.datetime_service import parse_stored_datetime
from reposter.services.processed_post_service import load_processed_ids, record_processed
from reposter.services.token_service import decrypt_access_token
from reposter.threads.media import normalize_post

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from reposter.models.user import User
    from reposter.schemas.threads import ThreadsPost
    from reposter.telegram.dispatcher import ChannelDispatcher
    from reposter.threads.base import PostSource

logger = logging.getLogger(__name__)


def admit_post(post: ThreadsPost, processed_ids: set[str], watermark: datetime) -> bool:
    """A post is admitted iff it is new for this user and not older than the watermark."""
    if post.id in processed_ids:
        return False
    return post.timestamp >= watermark


class UserProcessingGuard:
    """At most one in-flight pipeline run per user key.

    Safe under asyncio's cooperative model: the membership check and the
    insert happen without an await in between.
    """

    def __init__(self) -> None:
        self._in_flight: set[int] = set()

    def is_busy(self, key: int) -> bool:
        return key in self._in_flight

    @contextmanager
    def claim(self, key: int) -> Iterator[bool]:
        """Yield True if the key was claimed, False if another run holds it."""
        if key in self._in_flight:
            yield False
            return
        self._in_flight.add(key)
        try:
            yield True
        finally:
            self._in_flight.discard(key)


@dataclass
class UserSyncResult:
    """Outcome of one user's pipeline run."""

    telegram_id: int
    fetched: int = 0
    admitted: int = 0
    delivered_post_ids: list[str] = field(default_factory=list)
    failed_post_ids: list[str] = field(default_factory=list)
    duplicate_post_ids: list[str] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False


@dataclass
class CycleResult:
    """Outcome of one polling cycle across users."""

    users: list[UserSyncResult] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(len(result.delivered_post_ids) for result in self.users)

    @property
    def failed_users(self) -> int:
        return sum(1 for result in self.users if result.error is not None)


class SyncPipeline:
    """Per-user synchronization with collaborators injected."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: PostSource,
        dispatcher: ChannelDispatcher,
        secret_key: str,
        *,
        max_concurrency: int = 4,
        guard: UserProcessingGuard | None = None,
    ) -> None:
        if max_concurrency < 1:
            msg = f"max_concurrency must be >= 1, got {max_concurrency}"
            raise ValueError(msg)
        self._session_factory = session_factory
        self._source = source
        self._dispatcher = dispatcher
        self._secret_key = secret_key
        self._max_concurrency = max_concurrency
        self._guard = guard or UserProcessingGuard()

    @property
    def guard(self) -> UserProcessingGuard:
        return self._guard

    async def run_cycle(self) -> CycleResult:
        """Process every eligible user through a bounded worker pool."""
        async with self._session_factory() as session:
            users = await find_eligible_users(session)
        logger.debug("Polling cycle: %d eligible users", len(users))

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run_one(user: User) -> UserSyncResult:
            async with semaphore:
                return await self._run_guarded(user)

        results = await asyncio.gather(*(run_one(user) for user in users))
        cycle = CycleResult(users=list(results))
        if cycle.delivered or cycle.failed_users:
            logger.info(
                "Polling cycle completed: %d posts delivered, %d users failed",
                cycle.delivered,
                cycle.failed_users,
            )
        else:
            logger.debug("Polling cycle completed")
        return cycle

    async def _run_guarded(self, user: User) -> UserSyncResult:
        with self._guard.claim(user.telegram_id) as claimed:
            if not claimed:
                logger.info("User %s still in flight, skipping this cycle", user.telegram_id)
                return UserSyncResult(telegram_id=user.telegram_id, skipped=True)
            try:
                return await self.process_user(user)
            except Exception as exc:
                logger.exception("Error processing posts for user %s", user.telegram_id)
                return UserSyncResult(telegram_id=user.telegram_id, error=str(exc))

    async def process_user(self, user: User) -> UserSyncResult:
        """Fetch, filter and deliver one user's new posts.

        A fetch failure skips the user for this cycle; the next cycle retries
        naturally because neither the watermark nor the processed set changed.
        """
        result = UserSyncResult(telegram_id=user.telegram_id)
        if not user.sync_start_date:
            msg = f"User {user.telegram_id} has no sync start date"
            raise IneligibleUserError(msg)
        watermark = parse_stored_datetime(user.sync_start_date)
        access_token = decrypt_access_token(user, self._secret_key)
        if access_token is None:
            msg = f"User {user.telegram_id} has no Threads token"
            raise IneligibleUserError(msg)

        try:
            posts = await self._source.fetch_posts_since(access_token, watermark)
        except UpstreamFetchError as exc:
            logger.error("Error fetching posts for user %s: %s", user.telegram_id, exc)
            result.error = str(exc)
            return result
        result.fetched = len(posts)

        async with self._session_factory() as session:
            processed_ids = await load_processed_ids(session, user.id)
            channel_ids = [channel.channel_id for channel in await list_channels(session, user.id)]
            if not channel_ids:
                logger.info("User %s has no channels left, skipping", user.telegram_id)
                return result

            for post in sorted(posts, key=lambda p: p.timestamp):
                if not admit_post(post, processed_ids, watermark):
                    continue
                result.admitted += 1
                await self._process_post(session, user, post, channel_ids, result)
                processed_ids.add(post.id)
        return result

    async def _process_post(
        self,
        session: AsyncSession,
        user: User,
        post: ThreadsPost,
        channel_ids: list[str],
        result: UserSyncResult,
    ) -> None:
        try:
            normalized = normalize_post(post)
            report = await self._dispatcher.deliver(channel_ids, normalized.text, normalized.media)
        except Exception:
            logger.exception("Error processing post %s for user %s", post.id, user.telegram_id)
            result.failed_post_ids.append(post.id)
            return

        if report.all_failed:
            logger.warning(
                "Post %s for user %s failed on every channel", post.id, user.telegram_id
            )
        try:
            await record_processed(session, post.id, user.id)
        except DuplicateError:
            logger.info("Post %s for user %s was already recorded", post.id, user.telegram_id)
            result.duplicate_post_ids.append(post.id)
            return
        except SQLAlchemyError as exc:
            # Left unrecorded: the next cycle re-delivers it.
            await session.rollback()
            logger.error(
                "Failed to record post %s for user %s: %s", post.id, user.telegram_id, exc
            )
            result.failed_post_ids.append(post.id)
            return
        result.delivered_post_ids.append(post.id)
        logger.info("Processed post %s for user %s", post.id, user.telegram_id)
