"""RSS / Atom feed fetcher with conditional GET."""

import asyncio
import calendar
import hashlib
import logging
from datetime import datetime, UTC

import feedparser
import httpx

from briefdeck.constants import FEED_ACCEPT_HEADER, FEED_FETCH_TIMEOUT
from briefdeck.models import Source, SourceType
from briefdeck.services.fetchers.base import (
    FetchedItem,
    FetchResult,
    SourceFetchError,
    SourceInvalidError,
    ValidationResult,
)
from briefdeck.services.html_text import html_to_text
from briefdeck.services.url_safety import UnsafeUrlError
from briefdeck.services.web_content import PageFetchError, safe_get
from briefdeck.utils import now_utc

logger = logging.getLogger(__name__)

_PERMANENT_STATUSES = {400, 401, 403, 404, 405, 410}


def _struct_to_datetime(value) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return None


def entry_guid(entry) -> str:
    """Entry id, else link, else a hash of title and date."""
    for key in ("id", "link"):
        value = (entry.get(key) or "").strip()
        if value:
            return value
    seed = f"{entry.get('title', '')}|{entry.get('published') or entry.get('updated') or ''}"
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()


def entry_content(entry) -> str:
    """First content block, else summary/description."""
    contents = entry.get("content") or []
    if contents and contents[0].get("value"):
        return contents[0]["value"]
    return entry.get("summary") or entry.get("description") or ""


def entry_published_at(entry, fallback: datetime) -> tuple[datetime, bool]:
    """Return (published_at, parsed). Malformed or missing dates use *fallback*."""
    for key in ("published_parsed", "updated_parsed"):
        parsed = _struct_to_datetime(entry.get(key))
        if parsed is not None:
            return parsed, True
    return fallback, False


def looks_like_feed(parsed) -> bool:
    """A recognized RSS/Atom version, or at least some entries from a broken one."""
    return bool(parsed.get("version")) or bool(parsed.entries)


def parse_feed(content: bytes, since: datetime | None, fetched_at: datetime | None = None) -> list[FetchedItem]:
    """Turn a feed document into FetchedItems, skipping entries published before *since*.

    Raises SourceInvalidError when the document is not a feed at all.
    """
    parsed = feedparser.parse(content)
    if not looks_like_feed(parsed):
        raise SourceInvalidError(f"Unparseable feed: {parsed.get('bozo_exception') or 'not RSS or Atom'}")

    fetched_at = fetched_at or now_utc()
    items: list[FetchedItem] = []
    for entry in parsed.entries:
        published_at, has_date = entry_published_at(entry, fetched_at)
        if since is not None and has_date and published_at < since:
            continue

        raw = entry_content(entry)
        items.append(
            FetchedItem(
                guid=entry_guid(entry),
                title=(entry.get("title") or "").strip() or None,
                link=(entry.get("link") or "").strip() or None,
                author=entry.get("author") or None,
                published_at=published_at,
                raw_content=raw or None,
                clean_content=html_to_text(raw) if raw else None,
            )
        )
    return items


class FeedFetcher:
    """Fetches RSS 2.0 and Atom 0.3/1.0 feeds."""

    source_type = SourceType.FEED

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def _get(self, url: str, etag: str | None = None, last_modified: str | None = None):
        headers = {"Accept": FEED_ACCEPT_HEADER}
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified

        try:
            return await safe_get(url, headers=headers, client=self._client, timeout=FEED_FETCH_TIMEOUT)
        except UnsafeUrlError as e:
            raise SourceInvalidError(str(e)) from e
        except PageFetchError as e:
            if e.status_code in _PERMANENT_STATUSES:
                raise SourceInvalidError(str(e)) from e
            raise SourceFetchError(str(e)) from e

    async def fetch(self, source: Source, since: datetime | None) -> FetchResult:
        resp = await self._get(source.url, source.etag, source.last_modified)
        if resp.status_code == 304:
            logger.debug("Feed %s not modified", source.url)
            return FetchResult(etag=source.etag, last_modified=source.last_modified, not_modified=True)

        items = await asyncio.to_thread(parse_feed, resp.content, since)
        logger.info("Fetched %d entries from source %s", len(items), source.id)
        return FetchResult(
            items=items,
            etag=resp.headers.get("etag"),
            last_modified=resp.headers.get("last-modified"),
        )

    async def validate(self, identifier: str) -> ValidationResult:
        try:
            resp = await self._get(identifier)
        except SourceFetchError as e:
            logger.warning("Failed to validate feed at %s: %s", identifier, e)
            return ValidationResult.failed(f"Invalid feed: {e}")

        parsed = await asyncio.to_thread(feedparser.parse, resp.content)
        if not looks_like_feed(parsed):
            return ValidationResult.failed("Invalid feed: document is not RSS or Atom")
        return ValidationResult.ok(
            title=parsed.feed.get("title"),
            description=parsed.feed.get("subtitle") or parsed.feed.get("description"),
        )
