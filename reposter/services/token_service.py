"""Threads credential lifecycle: authorization chain and token persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reposter.services.account_service import upsert_user
from reposter.services.crypto_service import decrypt_value, encrypt_value
from reposter.services.datetime_service import expires_at, format_datetime

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from reposter.models.user import User
    from reposter.threads.base import AccountIdentity, TokenProvider

logger = logging.getLogger(__name__)


async def persist_credentials(
    session: AsyncSession,
    telegram_id: int,
    short_lived_token: str,
    long_lived_token: str,
    expires_in: int,
    threads_user_id: str,
    secret_key: str,
    *,
    username: str | None = None,
    now: datetime | None = None,
) -> User:
    """Store a completed authorization and activate the user.

    This is the only code path that grants sync eligibility from the
    credentials side. Tokens are encrypted at rest.
    """
    user = await upsert_user(
        session,
        telegram_id,
        threads_access_token=encrypt_value(short_lived_token, secret_key),
        threads_long_lived_token=encrypt_value(long_lived_token, secret_key),
        token_expires_at=format_datetime(expires_at(expires_in, now=now)),
        threads_user_id=threads_user_id,
        threads_username=username,
        is_active=True,
    )
    await session.commit()
    return user


async def complete_authorization(
    session: AsyncSession,
    client: TokenProvider,
    code: str,
    telegram_id: int,
    secret_key: str,
) -> AccountIdentity:
    """Run code -> short-lived -> long-lived -> identity, then persist once.

    The chain is sequential and never retried. An ``UpstreamAuthError`` at
    any step propagates before anything has been written.
    """
    short_grant = await client.exchange_code_for_token(code)
    long_grant = await client.upgrade_to_long_lived_token(short_grant.access_token)
    identity = await client.fetch_account_identity(long_grant.access_token)

    await persist_credentials(
        session,
        telegram_id,
        short_grant.access_token,
        long_grant.access_token,
        long_grant.expires_in,
        identity.id,
        secret_key,
        username=identity.username or None,
    )
    logger.info(
        "User %s authenticated with Threads account %s",
        telegram_id,
        identity.username or identity.id,
    )
    return identity


def decrypt_access_token(user: User, secret_key: str) -> str | None:
    """Plaintext long-lived token used for content fetches.

    Raises:
        ValueError: if the stored token cannot be decrypted with ``secret_key``.
    """
    if not user.threads_long_lived_token:
        return None
    return decrypt_value(user.threads_long_lived_token, secret_key)
