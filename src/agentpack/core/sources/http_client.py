"""Shared async HTTP client utilities for the package registry.

Provides a thin wrapper around ``httpx.AsyncClient`` with standardised
timeouts, user-agent headers and logging. Failures are logged and then
re-raised unchanged; the caller decides whether a registry outage is fatal.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentpack import __version__

logger = logging.getLogger(__name__)

# Timeout for all registry HTTP requests (seconds).
DEFAULT_TIMEOUT: float = 30.0

# User-Agent sent with every request.
USER_AGENT: str = f"agentpack/{__version__}"


def _client(timeout: float, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        transport=transport,
    )


async def fetch_json(
    url: str,
    *,
    params: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """Fetch a URL and parse the response as JSON.

    Args:
        url: The URL to fetch.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        transport: Optional transport (``httpx.MockTransport`` in tests).

    Returns:
        Parsed JSON response.

    Raises:
        httpx.HTTPError: On HTTP errors or timeouts.
        ValueError: If the body is not valid JSON.
    """
    try:
        async with _client(timeout, transport) as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
    except httpx.TimeoutException:
        logger.warning("Timeout fetching %s", url)
        raise
    except httpx.HTTPStatusError as exc:
        logger.warning("HTTP %d from %s", exc.response.status_code, url)
        raise
    except (httpx.RequestError, ValueError) as exc:
        logger.warning("Request error for %s: %s", url, exc)
        raise


async def fetch_bytes(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """Fetch a URL and return the raw response body.

    Raises:
        httpx.HTTPError: On HTTP errors or timeouts.
    """
    try:
        async with _client(timeout, transport) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.content
    except httpx.HTTPError:
        logger.warning("Failed to download %s", url)
        raise
