"""Tests for source creation and brief removal."""

import pytest
from sqlalchemy import select

from briefdeck.models import FetchStatus, Item, Source, SourceStatus, SourceType
from briefdeck.services.fetchers import ValidationResult
from briefdeck.services.source_service import (
    BriefNotFoundError,
    DuplicateSourceError,
    SourceValidationError,
    create_source,
    delete_brief,
)


class StubValidator:
    def __init__(self, source_type: SourceType, result: ValidationResult | None = None):
        self.source_type = source_type
        self.result = result or ValidationResult.ok(title="Validated title")
        self.validated: list[str] = []

    async def fetch(self, source, since):
        raise NotImplementedError

    async def validate(self, identifier):
        self.validated.append(identifier)
        return self.result


@pytest.fixture
def registry():
    return {t: StubValidator(t) for t in SourceType}


async def test_create_email_source_gets_inbound_token(db, registry, settings, make_brief):
    brief = await make_brief()

    source = await create_source(db, registry, brief.id, SourceType.EMAIL, name="Newsletter", settings=settings)

    assert source.email_address
    assert source.email_address == source.email_address.lower()
    assert source.url == f"email://{source.email_address}"
    assert source.refresh_interval_minutes == 0
    assert source.status == SourceStatus.ACTIVE
    assert source.fetch_status == FetchStatus.IDLE
    assert registry[SourceType.EMAIL].validated == []


async def test_create_email_source_requires_name(db, registry, settings, make_brief):
    brief = await make_brief()
    with pytest.raises(SourceValidationError):
        await create_source(db, registry, brief.id, SourceType.EMAIL, name="  ", settings=settings)


async def test_create_feed_source_normalizes_and_defaults(db, registry, settings, make_brief):
    brief = await make_brief()

    source = await create_source(
        db, registry, brief.id, SourceType.FEED, url="https://Example.com/feed/?utm_source=x", settings=settings
    )

    assert source.url == "https://example.com/feed"
    assert source.name == "Validated title"
    assert source.refresh_interval_minutes == 15
    assert registry[SourceType.FEED].validated == ["https://example.com/feed"]


async def test_create_duplicate_source_rejected(db, registry, settings, make_brief):
    brief = await make_brief()
    await create_source(db, registry, brief.id, SourceType.FEED, url="https://example.com/feed", settings=settings)

    with pytest.raises(DuplicateSourceError):
        await create_source(
            db, registry, brief.id, SourceType.FEED, url="https://EXAMPLE.com/feed/", settings=settings
        )

    # The same feed under another brief is fine
    other = await make_brief()
    await create_source(db, registry, other.id, SourceType.FEED, url="https://example.com/feed", settings=settings)


async def test_create_web_source_requires_prompt(db, registry, settings, make_brief):
    brief = await make_brief()
    with pytest.raises(SourceValidationError):
        await create_source(db, registry, brief.id, SourceType.WEB, url="https://example.com/news", settings=settings)


async def test_create_web_source(db, registry, settings, make_brief):
    brief = await make_brief()
    source = await create_source(
        db,
        registry,
        brief.id,
        SourceType.WEB,
        url="https://example.com/news",
        extraction_prompt="Every headline on the page",
        refresh_interval_minutes=120,
        settings=settings,
    )
    assert source.extraction_prompt == "Every headline on the page"
    assert source.refresh_interval_minutes == 120


async def test_create_social_link_source(db, registry, settings, make_brief):
    brief = await make_brief()
    source = await create_source(db, registry, brief.id, SourceType.SOCIAL_LINK, url="python", settings=settings)
    assert source.url == "reddit://python"
    assert registry[SourceType.SOCIAL_LINK].validated == ["reddit://python"]


@pytest.mark.parametrize("url", ["http://127.0.0.1/feed", "ftp://example.com/feed", "http://localhost/rss", ""])
async def test_create_source_rejects_unsafe_urls(db, registry, settings, make_brief, url):
    brief = await make_brief()
    with pytest.raises(SourceValidationError):
        await create_source(db, registry, brief.id, SourceType.FEED, url=url, settings=settings)
    assert registry[SourceType.FEED].validated == []


async def test_create_source_validation_failure(db, settings, make_brief):
    brief = await make_brief()
    registry = {SourceType.FEED: StubValidator(SourceType.FEED, ValidationResult.failed("Invalid feed: HTTP 404"))}

    with pytest.raises(SourceValidationError, match="HTTP 404"):
        await create_source(db, registry, brief.id, SourceType.FEED, url="https://example.com/gone", settings=settings)
    assert (await db.execute(select(Source))).scalars().all() == []


async def test_create_source_unknown_brief(db, registry, settings):
    with pytest.raises(BriefNotFoundError):
        await create_source(db, registry, 12345, SourceType.FEED, url="https://example.com/feed", settings=settings)


async def test_delete_brief_cascades(db, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    await make_item(source)
    brief_id = brief.id

    await delete_brief(db, brief_id)

    assert (await db.execute(select(Source))).scalars().all() == []
    assert (await db.execute(select(Item))).scalars().all() == []
    with pytest.raises(BriefNotFoundError):
        await delete_brief(db, brief_id)
