"""Email sources are push-only; items arrive through the ingestion listener."""

from datetime import datetime

from briefdeck.models import Source, SourceType
from briefdeck.services.fetchers.base import FetchResult, ValidationResult


class EmailFetcher:
    source_type = SourceType.EMAIL

    async def fetch(self, source: Source, since: datetime | None) -> FetchResult:
        return FetchResult()

    async def validate(self, identifier: str) -> ValidationResult:
        return ValidationResult.ok(title="Email source")
