"""Threads OAuth: authorization URL, token exchange and account lookup."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from reposter.exceptions import UpstreamAuthError
from reposter.schemas.threads import AccountResponse, TokenResponse
from reposter.threads.base import AccountIdentity, TokenGrant
from reposter.threads.http import THREADS_API_VERSION, response_body, send_request

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = ("threads_basic", "threads_content_publish")


class ThreadsAuthClient:
    """Client for the Threads authorization-code flow.

    Each method performs exactly one HTTPS call and never retries. Any
    non-success status, transport failure or malformed body raises
    ``UpstreamAuthError`` carrying the upstream response.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        redirect_uri: str,
        *,
        api_base_url: str = "https://graph.threads.net",
        authorize_url: str = "https://threads.net/oauth/authorize",
        scopes: Sequence[str] = DEFAULT_SCOPES,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._app_id = app_id
        self._app_secret = app_secret
        self._redirect_uri = redirect_uri
        self._api_base_url = api_base_url.rstrip("/")
        self._authorize_url = authorize_url
        self._scopes = tuple(scopes)
        self._http_client = http_client
        self._timeout = timeout

    @property
    def token_endpoint(self) -> str:
        return f"{self._api_base_url}/oauth/access_token"

    def build_authorization_url(self, state: str) -> str:
        """Build the URL the user opens to grant access. No side effects."""
        params = urlencode(
            {
                "client_id": self._app_id,
                "redirect_uri": self._redirect_uri,
                "scope": ",".join(self._scopes),
                "response_type": "code",
                "state": state,
            }
        )
        return f"{self._authorize_url}?{params}"

    async def exchange_code_for_token(self, code: str) -> TokenGrant:
        """Exchange an authorization code for a short-lived access token."""
        data = await self._post_token(
            {
                "client_id": self._app_id,
                "client_secret": self._app_secret,
                "grant_type": "authorization_code",
                "redirect_uri": self._redirect_uri,
                "code": code,
            },
            action="Code exchange",
        )
        return _to_grant(data, action="Code exchange")

    async def upgrade_to_long_lived_token(self, short_lived_token: str) -> TokenGrant:
        """Exchange a short-lived token for a long-lived one."""
        data = await self._post_token(
            {
                "client_id": self._app_id,
                "client_secret": self._app_secret,
                "grant_type": "fb_exchange_token",
                "fb_exchange_token": short_lived_token,
            },
            action="Long-lived token exchange",
        )
        return _to_grant(data, action="Long-lived token exchange")

    async def fetch_account_identity(self, access_token: str) -> AccountIdentity:
        """Resolve the Threads account id and username for a token."""
        url = f"{self._api_base_url}/{THREADS_API_VERSION}/me"
        try:
            resp = await send_request(
                self._http_client,
                "GET",
                url,
                params={"fields": "id,username", "access_token": access_token},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"Account lookup HTTP error: {type(exc).__name__}: {exc}"
            raise UpstreamAuthError(msg) from exc
        if resp.status_code != 200:
            raise UpstreamAuthError(
                "Account lookup failed", status_code=resp.status_code, body=response_body(resp)
            )
        try:
            account = AccountResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamAuthError(
                "Account lookup returned an invalid body", body=response_body(resp)
            ) from exc
        return AccountIdentity(id=account.id, username=account.username)

    async def _post_token(self, form: dict[str, str], *, action: str) -> object:
        try:
            resp = await send_request(
                self._http_client,
                "POST",
                self.token_endpoint,
                data=form,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"{action} HTTP error: {type(exc).__name__}: {exc}"
            raise UpstreamAuthError(msg) from exc
        if resp.status_code != 200:
            logger.warning("%s failed with status %s", action, resp.status_code)
            raise UpstreamAuthError(
                f"{action} failed", status_code=resp.status_code, body=response_body(resp)
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamAuthError(
                f"{action} returned an invalid body", body=response_body(resp)
            ) from exc


def _to_grant(data: object, *, action: str) -> TokenGrant:
    try:
        token = TokenResponse.model_validate(data)
    except ValidationError as exc:
        msg = f"{action} response missing access_token"
        raise UpstreamAuthError(msg) from exc
    return TokenGrant(access_token=token.access_token, expires_in=token.expires_in)
