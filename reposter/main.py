"""FastAPI application entry point and process wiring."""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

import httpx
from aiogram import Bot, Dispatcher
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from reposter import __version__
from reposter.api.auth import router as auth_router
from reposter.api.health import router as health_router
from reposter.config import Settings
from reposter.database import create_engine, create_schema, ensure_sqlite_directory
from reposter.exceptions import ReposterError
from reposter.services.scheduler import PollingScheduler
from reposter.services.sync_service import SyncPipeline
from reposter.telegram.bot import build_router
from reposter.telegram.dispatcher import ChannelDispatcher
from reposter.threads.auth import ThreadsAuthClient
from reposter.threads.content import ThreadsContentClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiogram.event").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def build_auth_client(settings: Settings, http_client: httpx.AsyncClient) -> ThreadsAuthClient:
    return ThreadsAuthClient(
        settings.threads_app_id,
        settings.threads_app_secret,
        settings.threads_redirect_uri,
        api_base_url=settings.threads_api_base_url,
        authorize_url=settings.threads_authorize_url,
        scopes=settings.threads_scopes,
        http_client=http_client,
        timeout=settings.http_timeout_seconds,
    )


def build_pipeline(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
    bot: Bot,
) -> SyncPipeline:
    """Assemble the sync pipeline from settings and shared clients."""
    content_client = ThreadsContentClient(
        settings.threads_api_base_url,
        http_client=http_client,
        page_limit=settings.threads_fetch_limit,
        max_pages=settings.threads_fetch_max_pages,
        timeout=settings.http_timeout_seconds,
    )
    return SyncPipeline(
        session_factory,
        content_client,
        ChannelDispatcher(bot),
        settings.secret_key,
        max_concurrency=settings.poll_max_concurrency,
    )


async def _cancel_task(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_config()
    configure_logging(settings.debug)
    logger.info("Starting reposter (debug=%s)", settings.debug)

    ensure_sqlite_directory(settings.database_url)
    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        await create_schema(engine)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    bot = Bot(token=settings.telegram_bot_token)
    app.state.http_client = http_client
    app.state.bot = bot
    app.state.auth_client = build_auth_client(settings, http_client)

    scheduler: PollingScheduler | None = None
    if settings.run_scheduler:
        pipeline = build_pipeline(settings, session_factory, http_client, bot)
        scheduler = PollingScheduler(pipeline, interval=settings.poll_interval_seconds)
        scheduler.start()
    app.state.scheduler = scheduler

    polling_task: asyncio.Task[None] | None = None
    if settings.run_bot:
        dispatcher = Dispatcher()
        dispatcher.include_router(build_router(session_factory, settings))
        polling_task = asyncio.create_task(
            dispatcher.start_polling(
                bot,
                handle_signals=False,
                close_bot_session=False,
                allowed_updates=dispatcher.resolve_used_update_types(),
            ),
            name="telegram-polling",
        )
        logger.info("Telegram bot polling started")

    yield

    try:
        await _cancel_task(polling_task)
    except Exception as exc:
        logger.error("Error during bot polling shutdown: %s", exc, exc_info=True)

    if scheduler is not None:
        try:
            await scheduler.stop()
        except Exception as exc:
            logger.error("Error during scheduler shutdown: %s", exc, exc_info=True)

    try:
        await bot.session.close()
    except Exception as exc:
        logger.error("Error during bot session shutdown: %s", exc, exc_info=True)

    try:
        await http_client.aclose()
    except Exception as exc:
        logger.error("Error during HTTP client shutdown: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("Reposter stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Threads Telegram Reposter",
        description="Reposts Threads posts to Telegram channels",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(auth_router)

    # Global exception handlers: safety net for unhandled exceptions

    @app.exception_handler(ReposterError)
    async def reposter_error_handler(request: Request, exc: ReposterError) -> JSONResponse:
        logger.error(
            "%s in %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=502,
            content={"detail": "Upstream service error"},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "reposter.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
