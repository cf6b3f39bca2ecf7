"""Threads content listing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from reposter.exceptions import UpstreamFetchError
from reposter.schemas.threads import ThreadsPost, ThreadsPostPage
from reposter.services.datetime_service import format_date
from reposter.threads.http import THREADS_API_VERSION, response_body, send_request

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

POST_FIELDS = ",".join(
    [
        "id",
        "text",
        "media_type",
        "media_url",
        "thumbnail_url",
        "timestamp",
        "permalink",
        "children{id,media_type,media_url,thumbnail_url}",
    ]
)


class ThreadsContentClient:
    """Fetches the token owner's posts from ``/me/threads``."""

    def __init__(
        self,
        api_base_url: str = "https://graph.threads.net",
        *,
        http_client: httpx.AsyncClient | None = None,
        page_limit: int = 25,
        max_pages: int = 1,
        timeout: float = 15.0,
    ) -> None:
        if page_limit < 1:
            msg = f"page_limit must be >= 1, got {page_limit}"
            raise ValueError(msg)
        if max_pages < 1:
            msg = f"max_pages must be >= 1, got {max_pages}"
            raise ValueError(msg)
        self._api_base_url = api_base_url.rstrip("/")
        self._http_client = http_client
        self._page_limit = page_limit
        self._max_pages = max_pages
        self._timeout = timeout

    async def fetch_posts_since(self, access_token: str, since: datetime) -> list[ThreadsPost]:
        """Return posts published on or after ``since``, oldest first.

        The upstream ``since`` filter has day granularity, so callers still
        compare each timestamp with the exact watermark.
        """
        url: str | None = f"{self._api_base_url}/{THREADS_API_VERSION}/me/threads"
        params: dict[str, str] | None = {
            "access_token": access_token,
            "fields": POST_FIELDS,
            "since": format_date(since),
            "limit": str(self._page_limit),
        }
        posts: list[ThreadsPost] = []
        pages = 0
        while url is not None and pages < self._max_pages:
            page = await self._fetch_page(url, params)
            pages += 1
            posts.extend(_parse_items(page))
            # paging.next is a fully-qualified URL that already carries every parameter
            url = page.paging.next if page.paging is not None else None
            params = None

        # Stable sort: equal timestamps keep upstream order.
        posts.sort(key=lambda post: post.timestamp)
        return posts

    async def _fetch_page(self, url: str, params: dict[str, str] | None) -> ThreadsPostPage:
        try:
            resp = await send_request(
                self._http_client, "GET", url, params=params, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            msg = f"Threads fetch HTTP error: {type(exc).__name__}: {exc}"
            raise UpstreamFetchError(msg) from exc
        if resp.status_code != 200:
            raise UpstreamFetchError(
                "Failed to fetch threads", status_code=resp.status_code, body=response_body(resp)
            )
        try:
            return ThreadsPostPage.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamFetchError(
                "Threads listing returned an invalid body", body=response_body(resp)
            ) from exc


def _parse_items(page: ThreadsPostPage) -> list[ThreadsPost]:
    posts: list[ThreadsPost] = []
    for item in page.data:
        try:
            posts.append(ThreadsPost.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed Threads post %r: %s", item.get("id"), exc)
    return posts
