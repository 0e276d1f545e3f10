"""Feed fetcher service.

This module performs the HTTP GET for a feed document and validates the
response status. Retries are left to the caller.
"""

import logging
from typing import Optional

import httpx

from feed_sync.errors import BadStatus, NetworkError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, "
    "application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5"
)
DEFAULT_USER_AGENT = "FeedSync/1.0 (RSS Feed Reader)"
DEFAULT_TIMEOUT = 30.0


def build_client(
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> httpx.AsyncClient:
    """Create an HTTP client suitable for sharing across feed fetches."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": user_agent, "Accept": ACCEPT_HEADER},
    )


async def fetch(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> bytes:
    """Fetch the raw bytes of a feed document.

    Args:
        url: Absolute URL of the feed
        client: Shared HTTP client; a short-lived one is created when omitted
        timeout: Per-request timeout in seconds, overriding the client default

    Returns:
        Response body

    Raises:
        NetworkError: On transport failure (including timeouts)
        BadStatus: When the HTTP status is outside 200-299
    """
    if client is None:
        async with build_client(timeout=timeout or DEFAULT_TIMEOUT) as owned:
            return await _get(owned, url, timeout)
    return await _get(client, url, timeout)


async def _get(client: httpx.AsyncClient, url: str, timeout: Optional[float]) -> bytes:
    logger.debug(f"Fetching feed: {url}")

    kwargs = {"headers": {"Accept": ACCEPT_HEADER}}
    if timeout is not None:
        kwargs["timeout"] = timeout

    try:
        response = await client.get(url, **kwargs)
    except httpx.InvalidURL as e:
        raise NetworkError(url, str(e)) from e
    except httpx.HTTPError as e:
        raise NetworkError(url, str(e) or type(e).__name__) from e

    if not 200 <= response.status_code < 300:
        logger.warning(f"Feed {url} returned HTTP {response.status_code}")
        raise BadStatus(response.status_code, url)

    return response.content
