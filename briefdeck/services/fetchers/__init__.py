"""Content fetchers, dispatched by source type."""

import httpx

from briefdeck.config import Settings
from briefdeck.models import SourceType
from briefdeck.services.fetchers.base import (
    FetchedItem,
    FetchResult,
    SourceFetcher,
    SourceFetchError,
    SourceInvalidError,
    ValidationResult,
)
from briefdeck.services.fetchers.email import EmailFetcher
from briefdeck.services.fetchers.feed import FeedFetcher
from briefdeck.services.fetchers.social_link import SocialLinkFetcher
from briefdeck.services.fetchers.web_page import WebPageFetcher
from briefdeck.services.scoring_service import Scorer

FetcherRegistry = dict[SourceType, SourceFetcher]


def build_registry(
    scorer: Scorer,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> FetcherRegistry:
    """One fetcher per source type."""
    fetchers: list[SourceFetcher] = [
        FeedFetcher(client=client),
        SocialLinkFetcher(client=client, settings=settings),
        WebPageFetcher(scorer, client=client),
        EmailFetcher(),
    ]
    return {fetcher.source_type: fetcher for fetcher in fetchers}


__all__ = [
    "FetchedItem",
    "FetchResult",
    "FetcherRegistry",
    "SourceFetcher",
    "SourceFetchError",
    "SourceInvalidError",
    "ValidationResult",
    "build_registry",
]
