"""Shared API dependencies: settings, DB session, Threads auth client."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from reposter.config import Settings
from reposter.services.scheduler import PollingScheduler
from reposter.threads.auth import ThreadsAuthClient


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_auth_client(request: Request) -> ThreadsAuthClient:
    """Get the Threads OAuth client from app state."""
    client: ThreadsAuthClient = request.app.state.auth_client
    return client


def get_scheduler(request: Request) -> PollingScheduler | None:
    """Get the polling scheduler, or None when this process does not run one."""
    scheduler: PollingScheduler | None = getattr(request.app.state, "scheduler", None)
    return scheduler


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session
