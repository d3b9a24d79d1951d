"""Web page fetcher: scheduled scrape of a page, items extracted by the LLM."""

import asyncio
import logging
from datetime import datetime

import httpx

from briefdeck.constants import MAX_WEB_PAGE_CHARS, WEB_PAGE_TIMEOUT
from briefdeck.models import Source, SourceType
from briefdeck.services.fetchers.base import (
    FetchedItem,
    FetchResult,
    SourceFetchError,
    SourceInvalidError,
    ValidationResult,
)
from briefdeck.services.html_text import page_title, page_to_text
from briefdeck.services.scoring_service import Scorer, ScoringError
from briefdeck.services.url_normalizer import normalize, resolve_relative
from briefdeck.services.url_safety import UnsafeUrlError
from briefdeck.services.web_content import PageFetchError, download_page
from briefdeck.utils import now_utc

logger = logging.getLogger(__name__)


class WebPageFetcher:
    source_type = SourceType.WEB

    def __init__(self, scorer: Scorer, client: httpx.AsyncClient | None = None):
        self._scorer = scorer
        self._client = client

    async def _download(self, url: str) -> str:
        try:
            _, html = await download_page(url, client=self._client, timeout=WEB_PAGE_TIMEOUT)
        except UnsafeUrlError as e:
            raise SourceInvalidError(str(e)) from e
        except PageFetchError as e:
            if e.status_code in (404, 410):
                raise SourceInvalidError(str(e)) from e
            raise SourceFetchError(str(e)) from e
        return html

    async def fetch(self, source: Source, since: datetime | None) -> FetchResult:
        if not source.extraction_prompt:
            raise SourceInvalidError("Web source has no extraction prompt")

        html = await self._download(source.url)
        text = await asyncio.to_thread(page_to_text, html, MAX_WEB_PAGE_CHARS)

        try:
            extracted = await self._scorer.extract_from_web(text, source.extraction_prompt)
        except ScoringError as e:
            raise SourceFetchError(f"Extraction failed: {e}") from e

        fetched_at = now_utc()
        items: list[FetchedItem] = []
        for entry in extracted:
            if not entry.link or not entry.link.strip():
                logger.debug("Skipping extracted item without link: %s", entry.title)
                continue
            link = resolve_relative(source.url, entry.link)
            items.append(
                FetchedItem(
                    guid=normalize(link),
                    title=entry.title or None,
                    link=link,
                    published_at=fetched_at,
                    clean_content=entry.content or None,
                )
            )

        logger.info("Extracted %d items from web source %s", len(items), source.id)
        return FetchResult(items=items)

    async def validate(self, identifier: str) -> ValidationResult:
        try:
            html = await self._download(identifier)
        except SourceFetchError as e:
            logger.warning("Failed to validate web URL %s: %s", identifier, e)
            return ValidationResult.failed(f"Failed to fetch URL: {e}")
        return ValidationResult.ok(title=page_title(html) or "Web Page", description="Web page source")
