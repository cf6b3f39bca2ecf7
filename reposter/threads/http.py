"""Shared HTTP plumbing for the Threads Graph API clients."""

from __future__ import annotations

from typing import Any

import httpx

THREADS_API_VERSION = "v1.0"


async def send_request(
    http_client: httpx.AsyncClient | None,
    method: str,
    url: str,
    *,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request, on ``http_client`` if given or on a throwaway client.

    Transport errors propagate as ``httpx.HTTPError`` for the caller to map.
    """
    if http_client is not None:
        return await http_client.request(method, url, timeout=timeout, **kwargs)
    async with httpx.AsyncClient() as client:
        return await client.request(method, url, timeout=timeout, **kwargs)


def response_body(response: httpx.Response) -> str:
    """Upstream error body, safe to log."""
    try:
        return response.text
    except UnicodeDecodeError:
        return repr(response.content[:200])
