"""Tests for the authorization chain and credential persistence."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from reposter.exceptions import UpstreamAuthError
from reposter.services.account_service import get_or_create_user, get_user_by_telegram_id
from reposter.services.datetime_service import parse_stored_datetime
from reposter.services.token_service import (
    complete_authorization,
    decrypt_access_token,
    persist_credentials,
)
from reposter.threads.base import AccountIdentity, TokenGrant, TokenProvider
from tests.conftest import TEST_SECRET_KEY

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeTokenProvider:
    """Records the chain of calls; optionally fails at one step."""

    def __init__(self, fail_at: str | None = None) -> None:
        self.fail_at = fail_at
        self.calls: list[tuple[str, str]] = []

    def _step(self, name: str, arg: str) -> None:
        self.calls.append((name, arg))
        if self.fail_at == name:
            raise UpstreamAuthError(f"{name} failed", status_code=400, body='{"error":"bad"}')

    async def exchange_code_for_token(self, code: str) -> TokenGrant:
        self._step("exchange", code)
        return TokenGrant(access_token="short-token", expires_in=3600)

    async def upgrade_to_long_lived_token(self, short_lived_token: str) -> TokenGrant:
        self._step("upgrade", short_lived_token)
        return TokenGrant(access_token="long-token", expires_in=5_184_000)

    async def fetch_account_identity(self, access_token: str) -> AccountIdentity:
        self._step("identity", access_token)
        return AccountIdentity(id="17841400000", username="alice")


class TestPersistCredentials:
    async def test_stores_encrypted_tokens_and_activates(self, db_session: AsyncSession) -> None:
        user = await persist_credentials(
            db_session,
            42,
            "short-token",
            "long-token",
            5_184_000,
            "17841400000",
            TEST_SECRET_KEY,
            username="alice",
            now=NOW,
        )

        assert user.is_active is True
        assert user.threads_user_id == "17841400000"
        assert user.threads_username == "alice"
        assert user.threads_long_lived_token != "long-token"
        assert decrypt_access_token(user, TEST_SECRET_KEY) == "long-token"
        assert user.token_expires_at is not None
        assert parse_stored_datetime(user.token_expires_at) == NOW + timedelta(days=60)

    async def test_updates_existing_user(self, db_session: AsyncSession) -> None:
        existing = await get_or_create_user(db_session, 42)

        user = await persist_credentials(
            db_session, 42, "s", "l", 60, "t-1", TEST_SECRET_KEY, now=NOW
        )

        assert user.id == existing.id


class TestCompleteAuthorization:
    async def test_fake_provider_satisfies_protocol(self) -> None:
        assert isinstance(FakeTokenProvider(), TokenProvider)

    async def test_chain_runs_in_order_and_persists(self, db_session: AsyncSession) -> None:
        provider = FakeTokenProvider()

        identity = await complete_authorization(
            db_session, provider, "auth-code", 42, TEST_SECRET_KEY
        )

        assert identity.username == "alice"
        assert provider.calls == [
            ("exchange", "auth-code"),
            ("upgrade", "short-token"),
            ("identity", "long-token"),
        ]
        user = await get_user_by_telegram_id(db_session, 42)
        assert user is not None
        assert user.is_active is True
        assert decrypt_access_token(user, TEST_SECRET_KEY) == "long-token"

    @pytest.mark.parametrize("step", ["exchange", "upgrade", "identity"])
    async def test_failure_at_any_step_writes_nothing(
        self, db_session: AsyncSession, step: str
    ) -> None:
        provider = FakeTokenProvider(fail_at=step)

        with pytest.raises(UpstreamAuthError, match=f"{step} failed"):
            await complete_authorization(db_session, provider, "auth-code", 42, TEST_SECRET_KEY)

        assert await get_user_by_telegram_id(db_session, 42) is None

    async def test_upgrade_not_attempted_after_exchange_failure(
        self, db_session: AsyncSession
    ) -> None:
        provider = FakeTokenProvider(fail_at="exchange")

        with pytest.raises(UpstreamAuthError):
            await complete_authorization(db_session, provider, "auth-code", 42, TEST_SECRET_KEY)

        assert [name for name, _ in provider.calls] == ["exchange"]


class TestDecryptAccessToken:
    async def test_missing_token_returns_none(self, db_session: AsyncSession) -> None:
        user = await get_or_create_user(db_session, 1)
        assert decrypt_access_token(user, TEST_SECRET_KEY) is None

    async def test_wrong_key_raises(self, db_session: AsyncSession) -> None:
        user = await persist_credentials(
            db_session, 1, "s", "l", 60, "t-1", TEST_SECRET_KEY, now=NOW
        )
        with pytest.raises(ValueError, match="Failed to decrypt"):
            decrypt_access_token(user, "some-other-secret-key-value")
