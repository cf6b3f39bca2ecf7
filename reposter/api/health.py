"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from reposter import __version__
from reposter.api.deps import get_scheduler, get_session
from reposter.services.scheduler import PollingScheduler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    scheduler: str


def _scheduler_status(scheduler: PollingScheduler | None) -> str:
    if scheduler is None:
        return "disabled"
    return "running" if scheduler.is_running else "stopped"


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    scheduler: Annotated[PollingScheduler | None, Depends(get_scheduler)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    scheduler_status = _scheduler_status(scheduler)
    healthy = db_status == "ok" and scheduler_status != "stopped"
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=__version__,
        database=db_status,
        scheduler=scheduler_status,
    )
