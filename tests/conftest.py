"""Shared test fixtures for the reposter."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from reposter.config import Settings
from reposter.database import create_engine as create_db_engine
from reposter.database import create_schema
from reposter.main import create_app
from reposter.models.channel import Channel
from reposter.models.user import User
from reposter.services.crypto_service import encrypt_value
from reposter.services.datetime_service import format_datetime

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from reposter.services.scheduler import PollingScheduler
    from reposter.threads.auth import ThreadsAuthClient

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_BOT_TOKEN = "123456789:AAH-test-token-for-reposter-tests"
TEST_BOT_USERNAME = "reposter_test_bot"

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@asynccontextmanager
async def create_test_client(
    settings: Settings,
    auth_client: ThreadsAuthClient,
    scheduler: PollingScheduler | None = None,
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with an initialized app.

    Manually performs the parts of the application lifespan the HTTP routes
    need, because ASGITransport does not trigger it.
    """
    app = create_app(settings)
    engine, session_factory = create_db_engine(settings)
    await create_schema(engine)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.auth_client = auth_client
    app.state.scheduler = scheduler

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await engine.dispose()


async def create_user(
    session: AsyncSession,
    telegram_id: int,
    *,
    token: str | None = "long-lived-token",
    expires_at: datetime | None = None,
    sync_start: datetime | None = datetime(2024, 1, 1, tzinfo=timezone.utc),
    is_active: bool = True,
    channels: tuple[str, ...] = ("-1001",),
) -> User:
    """Insert a user row directly, eligible for sync by default."""
    now = format_datetime(FIXED_NOW)
    user = User(
        telegram_id=telegram_id,
        threads_long_lived_token=encrypt_value(token, TEST_SECRET_KEY) if token else None,
        token_expires_at=format_datetime(expires_at or datetime(2099, 1, 1, tzinfo=timezone.utc)),
        threads_user_id=f"threads-{telegram_id}",
        sync_start_date=format_datetime(sync_start) if sync_start else None,
        is_active=is_active,
        created_at=now,
        updated_at=now,
    )
    session.add(user)
    await session.flush()
    for index, channel_id in enumerate(channels):
        session.add(
            Channel(
                channel_id=channel_id,
                owner_id=user.id,
                created_at=format_datetime(FIXED_NOW + timedelta(seconds=index)),
            )
        )
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        base_url="https://reposter.test",
        telegram_bot_token=TEST_BOT_TOKEN,
        telegram_bot_username=TEST_BOT_USERNAME,
        threads_app_id="threads-app-id",
        threads_app_secret="threads-app-secret",
        threads_redirect_uri="https://reposter.test/auth/threads/callback",
        run_bot=False,
        run_scheduler=False,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
