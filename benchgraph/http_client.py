"""Shared HTTP client for talking to the benchmark server.

All graph requests go through one lazily created ``httpx.AsyncClient`` so
connections are pooled and kept alive across requests:

    from benchgraph.http_client import get_async_client, request_with_retry

    client = await get_async_client()
    response = await request_with_retry(client, "GET", url, max_retries=3)

For cleanup on shutdown:
    await close_clients()
"""

import asyncio
import os
import random
from typing import Optional

import httpx

from benchgraph.config import HttpConfig
from benchgraph.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_CONNECTIONS = int(os.environ.get("BENCHGRAPH_HTTP_MAX_CONNECTIONS", "20"))
DEFAULT_MAX_KEEPALIVE = int(os.environ.get("BENCHGRAPH_HTTP_MAX_KEEPALIVE", "10"))

_async_client: Optional[httpx.AsyncClient] = None
# Created on first use, asyncio.Lock needs a running event loop
_async_lock: Optional[asyncio.Lock] = None


def _create_timeout(config: HttpConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout,
        read=config.read_timeout,
        write=config.read_timeout,
        pool=config.connect_timeout,
    )


def _create_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
        keepalive_expiry=30.0,
    )


def _get_async_lock() -> asyncio.Lock:
    global _async_lock
    if _async_lock is None:
        _async_lock = asyncio.Lock()
    return _async_lock


async def get_async_client(config: Optional[HttpConfig] = None) -> httpx.AsyncClient:
    """Get the shared async HTTP client.

    Args:
        config: Timeouts to use when the client is created for the first time

    Returns:
        Shared httpx.AsyncClient instance
    """
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        return _async_client

    async with _get_async_lock():
        if _async_client is not None and not _async_client.is_closed:
            return _async_client

        _async_client = httpx.AsyncClient(
            timeout=_create_timeout(config or HttpConfig()),
            limits=_create_limits(),
            http2=True,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )
        logger.debug(
            f"Initialized shared async HTTP client "
            f"(max_connections={DEFAULT_MAX_CONNECTIONS})"
        )
        return _async_client


async def close_clients() -> None:
    """Close the shared HTTP client."""
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        await _async_client.aclose()
        logger.info("Closed shared async HTTP client")
    _async_client = None


def reset_clients() -> None:
    """Forget the shared client without closing it (for testing)."""
    global _async_client, _async_lock
    _async_client = None
    _async_lock = None


RETRYABLE_STATUS_CODES = frozenset([
    429,  # Rate limited
    500,  # Internal server error
    502,  # Bad gateway
    503,  # Service unavailable
    504,  # Gateway timeout
])


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 3,
    retry_on: frozenset[int] = RETRYABLE_STATUS_CODES,
    retry_delay: float = 1.0,
    retry_backoff: float = 2.0,
    retry_max_delay: float = 30.0,
    **kwargs,
) -> httpx.Response:
    """Make an HTTP request with automatic retry for transient errors.

    Retries rate limits (429), server errors (5xx) and network errors with
    exponential backoff. Respects Retry-After headers when present.

    Args:
        client: The httpx.AsyncClient to use.
        method: HTTP method (GET, POST, etc.).
        url: Request URL.
        max_retries: Maximum number of retry attempts.
        retry_on: Set of HTTP status codes to retry on.
        retry_delay: Initial delay between retries in seconds.
        retry_backoff: Multiplier for exponential backoff.
        retry_max_delay: Maximum delay between retries.
        **kwargs: Additional arguments passed to client.request().

    Returns:
        httpx.Response from successful request.

    Raises:
        httpx.HTTPStatusError: If all retries exhausted or non-retryable error.
        httpx.RequestError: If the network error persists after all retries.
    """
    delay = retry_delay

    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            if attempt >= max_retries:
                raise

            logger.warning(
                f"Request {method} {url} failed with {type(e).__name__}: {e}, "
                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries + 1})"
            )
            await asyncio.sleep(delay)
            delay = min(delay * retry_backoff, retry_max_delay)
            continue

        if response.status_code < 400:
            return response

        if response.status_code not in retry_on or attempt >= max_retries:
            response.raise_for_status()

        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                wait_time = float(retry_after)
            except ValueError:
                wait_time = delay
        else:
            # Jitter avoids synchronized retries from many clients
            wait_time = delay * (1 + random.uniform(0.1, 0.25))
        wait_time = min(wait_time, retry_max_delay)

        logger.warning(
            f"Request {method} {url} returned {response.status_code}, "
            f"retrying in {wait_time:.1f}s (attempt {attempt + 1}/{max_retries + 1})"
        )
        await asyncio.sleep(wait_time)
        delay = min(delay * retry_backoff, retry_max_delay)

    raise httpx.RequestError(f"All {max_retries + 1} attempts failed for {method} {url}")
