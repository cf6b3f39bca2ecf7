"""Threads OAuth endpoints: start the authorization and receive the callback."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reposter.api.deps import get_auth_client, get_session, get_settings
from reposter.config import Settings
from reposter.exceptions import UpstreamAuthError
from reposter.services.crypto_service import verify_state
from reposter.services.token_service import complete_authorization
from reposter.telegram.bot import AUTH_ERROR, AUTH_SUCCESS
from reposter.threads.auth import ThreadsAuthClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/threads", tags=["auth"])


@router.get("/authorize")
async def authorize(
    state: Annotated[str, Query(min_length=1)],
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[ThreadsAuthClient, Depends(get_auth_client)],
) -> RedirectResponse:
    """Redirect the user to the Threads consent page."""
    try:
        telegram_id = verify_state(state, settings.secret_key, settings.oauth_state_ttl_seconds)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired authorization link. Use /auth in the bot again.",
        ) from exc

    logger.info("Starting Threads authorization for user %s", telegram_id)
    return RedirectResponse(
        url=client.build_authorization_url(state),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/callback")
async def callback(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[ThreadsAuthClient, Depends(get_auth_client)],
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Handle the Threads OAuth callback and send the user back to the bot.

    Every failure ends in the bot's error deep link; nothing is persisted
    unless the whole token chain succeeded.
    """
    failure = RedirectResponse(
        url=settings.bot_start_url(AUTH_ERROR), status_code=status.HTTP_303_SEE_OTHER
    )
    if error is not None:
        logger.warning("Threads authorization denied: %s", error)
        return failure
    if not code or not state:
        logger.warning("Threads callback without code or state")
        return failure

    try:
        telegram_id = verify_state(state, settings.secret_key, settings.oauth_state_ttl_seconds)
    except ValueError:
        logger.warning("Threads callback with invalid or expired state")
        return failure

    try:
        await complete_authorization(session, client, code, telegram_id, settings.secret_key)
    except UpstreamAuthError as exc:
        logger.error("Threads authentication failed for user %s: %s", telegram_id, exc)
        return failure
    except SQLAlchemyError as exc:
        logger.error("Failed to store Threads credentials for user %s: %s", telegram_id, exc)
        await session.rollback()
        return failure

    return RedirectResponse(
        url=settings.bot_start_url(AUTH_SUCCESS), status_code=status.HTTP_303_SEE_OTHER
    )
