"""Guarded page downloads and on-demand article extraction."""

import asyncio
import codecs
import logging
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
import trafilatura

from briefdeck.config import get_settings
from briefdeck.constants import MAX_REDIRECTS, MAX_RESPONSE_BYTES
from briefdeck.http_client import get_http_client
from briefdeck.services.url_safety import UnsafeUrlError, ensure_public_url

logger = logging.getLogger(__name__)

HTML_ACCEPT_HEADER = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5"


class PageFetchError(Exception):
    """Raised when a page cannot be downloaded."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SafeResponse:
    url: str
    status_code: int
    headers: httpx.Headers
    content: bytes
    encoding: str | None = None

    @property
    def text(self) -> str:
        encoding = self.encoding or "utf-8"
        try:
            codecs.lookup(encoding)
        except LookupError:
            logger.debug("Unknown charset %r from %s, decoding as utf-8", encoding, self.url)
            encoding = "utf-8"
        return self.content.decode(encoding, errors="replace")


async def safe_get(
    url: str,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
    allow_localhost: bool | None = None,
) -> SafeResponse:
    """GET *url*, following redirects by hand and re-checking every hop.

    Returns 2xx and 304 responses. Raises UnsafeUrlError for blocked
    destinations and PageFetchError for HTTP errors, transport failures,
    oversized bodies, redirect loops and calls that run past *timeout*
    seconds in total (redirects and body included).
    """
    settings = get_settings()
    client = client or get_http_client()
    timeout = timeout if timeout is not None else settings.web_fetch_timeout
    if allow_localhost is None:
        allow_localhost = settings.web_fetch_allow_localhost

    try:
        async with asyncio.timeout(timeout):
            return await _follow_redirects(url, headers, client, timeout, allow_localhost)
    except TimeoutError as e:
        raise PageFetchError(f"Request to {url} timed out after {timeout}s") from e


async def _follow_redirects(
    url: str,
    headers: dict[str, str] | None,
    client: httpx.AsyncClient,
    timeout: float,
    allow_localhost: bool,
) -> SafeResponse:
    current = url
    for _ in range(MAX_REDIRECTS + 1):
        await ensure_public_url(current, allow_localhost=allow_localhost)
        try:
            async with client.stream(
                "GET", current, headers=headers, timeout=timeout, follow_redirects=False
            ) as resp:
                if resp.is_redirect:
                    location = resp.headers.get("location")
                    if not location:
                        raise PageFetchError(f"Redirect without location from {current}", resp.status_code)
                    current = urljoin(current, location)
                    continue

                if resp.status_code >= 400:
                    raise PageFetchError(f"HTTP {resp.status_code} for {current}", resp.status_code)

                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > MAX_RESPONSE_BYTES:
                        raise PageFetchError(f"Response from {current} exceeds {MAX_RESPONSE_BYTES} bytes")

                return SafeResponse(
                    url=current,
                    status_code=resp.status_code,
                    headers=resp.headers,
                    content=bytes(body),
                    encoding=resp.charset_encoding,
                )
        except httpx.HTTPError as e:
            raise PageFetchError(f"Request to {current} failed: {e}") from e

    raise PageFetchError(f"Too many redirects starting at {url}")


async def download_page(
    url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> tuple[str, str]:
    """Download an HTML page through the SSRF guard. Returns ``(final_url, html)``."""
    resp = await safe_get(url, headers={"Accept": HTML_ACCEPT_HEADER}, client=client, timeout=timeout)
    return resp.url, resp.text


async def fetch_article_text(url: str | None, client: httpx.AsyncClient | None = None) -> str | None:
    """Return the main article text at *url*, or None on any failure."""
    settings = get_settings()
    if not settings.web_fetch_enabled or not url:
        return None

    try:
        _, html = await download_page(url, client=client)
    except UnsafeUrlError as e:
        logger.info("Skipping web content for %s: %s", url, e)
        return None
    except PageFetchError as e:
        logger.info("Web content fetch failed for %s: %s", url, e)
        return None
    except Exception:
        logger.exception("Unexpected error fetching web content for %s", url)
        return None

    try:
        text = await asyncio.to_thread(
            trafilatura.extract,
            html,
            url=url,
            include_comments=False,
            include_tables=True,
        )
    except Exception as e:
        logger.warning("Article extraction failed for %s: %s", url, e)
        return None

    return text.strip() if text and text.strip() else None
