"""SourceFetcher protocol and the values fetchers hand back to the fetch worker."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from briefdeck.models import Source, SourceType


class SourceFetchError(Exception):
    """Transient fetch failure (network, timeout, 5xx, rate limit). Retried next tick."""


class SourceInvalidError(SourceFetchError):
    """Permanent failure: the source itself is broken (gone, unparseable, blocked)."""


@dataclass
class FetchedItem:
    """One normalized entry produced by a fetcher."""

    guid: str
    title: str | None = None
    link: str | None = None
    author: str | None = None
    published_at: datetime | None = None
    raw_content: str | None = None
    clean_content: str | None = None


@dataclass
class FetchResult:
    """Items plus refreshed conditional-fetch cache values."""

    items: list[FetchedItem] = field(default_factory=list)
    etag: str | None = None
    last_modified: str | None = None
    not_modified: bool = False


@dataclass
class ValidationResult:
    valid: bool
    title: str | None = None
    description: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, title: str | None = None, description: str | None = None) -> "ValidationResult":
        return cls(valid=True, title=title, description=description)

    @classmethod
    def failed(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


class SourceFetcher(Protocol):
    """Protocol for content fetchers (feeds, social links, web pages, email)."""

    source_type: SourceType

    async def fetch(self, source: Source, since: datetime | None) -> FetchResult:
        """Retrieve entries published after *since* (None on first fetch).

        Raises SourceFetchError / SourceInvalidError.
        """
        ...

    async def validate(self, identifier: str) -> ValidationResult:
        """Check that *identifier* (URL or handle) can be fetched."""
        ...
