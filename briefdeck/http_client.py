"""Shared httpx.AsyncClient for connection pooling across app and workers."""

import httpx

from briefdeck.config import get_settings
from briefdeck.constants import HTTP_CONNECT_TIMEOUT, HTTP_TOTAL_TIMEOUT

_client: httpx.AsyncClient | None = None


def _build_client() -> httpx.AsyncClient:
    # Redirects are followed by hand where a hop needs re-checking
    return httpx.AsyncClient(
        timeout=httpx.Timeout(HTTP_TOTAL_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
        headers={"User-Agent": get_settings().web_fetch_user_agent},
        follow_redirects=False,
    )


def get_http_client() -> httpx.AsyncClient:
    """Return the shared httpx.AsyncClient. Falls back to creating one if not initialized."""
    global _client
    if _client is None:
        _client = _build_client()
    return _client


async def init_http_client() -> None:
    """Initialize the shared client. Call during app / worker startup."""
    global _client
    _client = _build_client()


async def close_http_client() -> None:
    """Close the shared client. Call during app / worker shutdown."""
    global _client
    if _client:
        await _client.aclose()
        _client = None
