"""Tests for item enrichment, scoring, retries and the NEW-item sweep."""

from datetime import timedelta

import pytest

from briefdeck.db import repository
from briefdeck.models import ItemStatus
from briefdeck.services.processing_service import (
    needs_web_content,
    process_item,
    retry_delay_seconds,
    sweep_new_items,
)
from briefdeck.services.scoring_service import ScoreResult, ScoringError

from conftest import NOW


class StubScorer:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result or ScoreResult(summary="Short summary", topics=["ai"], score=80, score_reasoning="Fits")
        self.error = error
        self.calls: list[tuple] = []

    async def enrich_with_score(self, title, content, web_content, criteria):
        self.calls.append((title, content, web_content, criteria))
        if self.error:
            raise self.error
        return self.result


def test_retry_delay_doubles():
    assert [retry_delay_seconds(n, 30) for n in (1, 2, 3)] == [30, 60, 120]


@pytest.mark.parametrize(
    "link, content, expected",
    [
        ("https://e.com/a", "short", True),
        ("https://e.com/a", "x" * 5000, False),
        ("mailto:abc@def", "short", False),
        (None, "short", False),
    ],
)
def test_needs_web_content(link, content, expected):
    assert needs_web_content(link, content) is expected


async def test_process_item_success(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief(criteria="LLM tooling")
    source = await make_source(brief)
    item = await make_item(source, title="New model released", raw_content="x" * 3000)
    scorer = StubScorer()

    assert await process_item(db, item.id, scorer, queue, settings, now=NOW) == ItemStatus.DONE

    item = await repository.get_item(db, item.id)
    assert item.status == ItemStatus.DONE
    assert item.score == 80
    assert item.summary == "Short summary"
    assert item.score_reasoning == "Fits"
    assert item.tags["topics"] == ["ai"]
    assert item.attempts == 1
    assert scorer.calls[0][3] == "LLM tooling"


async def test_process_item_pulls_web_content_for_short_entries(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source, link="https://news.example.com/story", raw_content="teaser")
    fetched: list[str] = []

    async def web_fetch(url):
        fetched.append(url)
        return "The whole article"

    scorer = StubScorer()
    await process_item(db, item.id, scorer, queue, settings, web_fetch=web_fetch, now=NOW)

    assert fetched == ["https://news.example.com/story"]
    assert scorer.calls[0][2] == "The whole article"
    assert (await repository.get_item(db, item.id)).web_content == "The whole article"


async def test_process_item_without_score_still_done(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source)
    scorer = StubScorer(result=ScoreResult(summary="s", score=None))

    assert await process_item(db, item.id, scorer, queue, settings, now=NOW) == ItemStatus.DONE
    assert (await repository.get_item(db, item.id)).score is None


async def test_process_item_failure_schedules_retry(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source)
    item_id = item.id

    status = await process_item(db, item_id, StubScorer(error=ScoringError("LLM error: HTTP 500")), queue, settings, now=NOW)

    assert status == ItemStatus.PENDING
    item = await repository.get_item(db, item_id)
    assert item.status == ItemStatus.PENDING
    assert item.attempts == 1
    assert item.error_message == "LLM error: HTTP 500"
    assert queue.processing == [(item_id, 30)]


async def test_process_item_gives_up_after_max_attempts(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source, status=ItemStatus.PENDING, attempts=2)
    item_id = item.id

    status = await process_item(db, item_id, StubScorer(error=ScoringError("boom")), queue, settings, now=NOW)

    assert status == ItemStatus.ERROR
    item = await repository.get_item(db, item_id)
    assert item.status == ItemStatus.ERROR
    assert item.attempts == 3
    assert queue.processing == []


async def test_process_item_permanent_scoring_error_skips_retries(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source)
    item_id = item.id

    scorer = StubScorer(error=ScoringError("LLM error: HTTP 401", retryable=False))
    status = await process_item(db, item_id, scorer, queue, settings, now=NOW)

    assert status == ItemStatus.ERROR
    item = await repository.get_item(db, item_id)
    assert item.attempts == 1
    assert item.error_message == "LLM error: HTTP 401"
    assert queue.processing == []


async def test_process_item_skips_unclaimable(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source, status=ItemStatus.DONE, score=50)
    scorer = StubScorer()

    assert await process_item(db, item.id, scorer, queue, settings, now=NOW) is None
    assert scorer.calls == []


async def test_sweep_enqueues_only_settled_new_items(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    settled = await make_item(source, status_changed_at=NOW - timedelta(minutes=10))
    await make_item(source, status_changed_at=NOW - timedelta(seconds=30))
    await make_item(source, status=ItemStatus.DONE, status_changed_at=NOW - timedelta(hours=1))

    assert await sweep_new_items(db, queue, settings, NOW) == 1
    assert queue.processing_ids == [settled.id]
    assert (await repository.get_item(db, settled.id)).status == ItemStatus.PENDING


async def test_sweep_leaves_item_new_when_enqueue_fails(db, queue, settings, make_brief, make_source, make_item):
    brief = await make_brief()
    source = await make_source(brief)
    item = await make_item(source, status_changed_at=NOW - timedelta(minutes=10))
    queue.fail = True

    assert await sweep_new_items(db, queue, settings, NOW) == 0
    assert (await repository.get_item(db, item.id)).status == ItemStatus.NEW
