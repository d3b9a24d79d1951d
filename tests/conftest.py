"""Shared fixtures: a throwaway SQLite database, a recording job queue, model factories."""

import itertools
import os
import tempfile

# Settings are read once at import time; configure them before briefdeck loads
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.gettempdir()}/briefdeck-tests.db")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("INBOUND_EMAIL_DOMAIN", "in.briefdeck.test")
os.environ.setdefault("INBOUND_EMAIL_SECRET", "test-secret")

from datetime import datetime, time, UTC

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from briefdeck.config import Settings
from briefdeck.db.session import build_engine
from briefdeck.models import (
    Base,
    Brief,
    BriefFrequency,
    BriefStatus,
    FetchStatus,
    Item,
    ItemStatus,
    Source,
    SourceStatus,
    SourceType,
)
from briefdeck.queue import QueueError

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)

_seq = itertools.count(1)


class FakeQueue:
    """JobQueue that records what was enqueued; ``fail = True`` makes every call raise."""

    def __init__(self):
        self.fetches: list[int] = []
        self.processing: list[tuple[int, int]] = []
        self.briefs: list[int] = []
        self.emails: list[dict] = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise QueueError("broker unavailable")

    async def enqueue_fetch(self, source_id: int) -> None:
        self._check()
        self.fetches.append(source_id)

    async def enqueue_processing(self, item_id: int, defer_seconds: int = 0) -> None:
        self._check()
        self.processing.append((item_id, defer_seconds))

    async def enqueue_brief(self, brief_id: int) -> None:
        self._check()
        self.briefs.append(brief_id)

    async def enqueue_email(self, event: dict) -> None:
        self._check()
        self.emails.append(event)

    @property
    def processing_ids(self) -> list[int]:
        return [item_id for item_id, _ in self.processing]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        llm_provider="mock",
        inbound_email_domain="in.briefdeck.test",
        inbound_email_secret="test-secret",
        processing_max_attempts=3,
        processing_retry_base_seconds=30,
    )


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def make_brief(db):
    async def factory(**overrides) -> Brief:
        values = {
            "owner_id": 1,
            "title": "AI news",
            "criteria": "Machine learning research and tooling",
            "frequency": BriefFrequency.DAILY,
            "schedule_time": time(8, 0),
            "timezone": "UTC",
            "status": BriefStatus.ACTIVE,
        }
        values.update(overrides)
        brief = Brief(**values)
        db.add(brief)
        await db.commit()
        return brief

    return factory


@pytest.fixture
def make_source(db):
    async def factory(brief: Brief, **overrides) -> Source:
        values = {
            "brief_id": brief.id,
            "name": "Example feed",
            "type": SourceType.FEED,
            "status": SourceStatus.ACTIVE,
            "fetch_status": FetchStatus.IDLE,
            "url": f"https://example.com/feed/{next(_seq)}",
            "refresh_interval_minutes": 15,
        }
        values.update(overrides)
        source = Source(**values)
        db.add(source)
        await db.commit()
        return source

    return factory


@pytest.fixture
def make_item(db):
    async def factory(source: Source, **overrides) -> Item:
        values = {
            "source_id": source.id,
            "guid": f"guid-{next(_seq)}",
            "title": "Some article",
            "link": None,
            "published_at": NOW,
            "raw_content": "Body text",
            "status": ItemStatus.NEW,
            "status_changed_at": NOW,
        }
        values.update(overrides)
        item = Item(**values)
        db.add(item)
        await db.commit()
        return item

    return factory
