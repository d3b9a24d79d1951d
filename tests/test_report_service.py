"""Tests for report generation."""

from datetime import timedelta

from briefdeck.db import repository
from briefdeck.models import BriefFrequency, BriefStatus, ItemStatus
from briefdeck.services.report_service import compute_since, execute_brief

from conftest import NOW


async def test_compute_since_lookback(make_brief):
    daily = await make_brief()
    weekly = await make_brief(frequency=BriefFrequency.WEEKLY)
    executed = await make_brief(last_executed_at=NOW - timedelta(hours=5))

    assert compute_since(daily, NOW) == NOW - timedelta(days=1)
    assert compute_since(weekly, NOW) == NOW - timedelta(days=7)
    assert compute_since(executed, NOW) == NOW - timedelta(hours=5)


async def test_execute_brief_ranks_scored_items(db, settings, make_brief, make_source, make_item):
    brief = await make_brief(status=BriefStatus.QUEUED)
    source = await make_source(brief)
    recent = NOW - timedelta(hours=2)
    low = await make_item(source, title="low", score=30, status=ItemStatus.DONE, published_at=recent)
    top = await make_item(source, title="top", score=90, status=ItemStatus.DONE, published_at=recent)
    mid = await make_item(source, title="mid", score=75, status=ItemStatus.DONE, published_at=recent)
    await make_item(source, title="unscored", score=None, status=ItemStatus.DONE, published_at=recent)
    await make_item(source, title="stale", score=99, status=ItemStatus.DONE, published_at=NOW - timedelta(days=3))
    await make_item(source, title="failed", score=95, status=ItemStatus.ERROR, published_at=recent)

    other_brief = await make_brief()
    other_source = await make_source(other_brief)
    await make_item(other_source, title="foreign", score=100, status=ItemStatus.DONE, published_at=recent)

    report = await execute_brief(db, brief.id, settings, NOW)

    assert report is not None
    entries = await repository.get_report_entries(db, report.id)
    assert [(e.position, e.score, i.id) for e, i in entries] == [(1, 90, top.id), (2, 75, mid.id), (3, 30, low.id)]

    brief = await repository.get_brief(db, brief.id)
    assert brief.status == BriefStatus.ACTIVE
    assert brief.last_executed_at is not None
    assert brief.error_message is None


async def test_execute_brief_respects_limit(db, settings, make_brief, make_source, make_item):
    settings.max_report_items = 2
    brief = await make_brief(status=BriefStatus.QUEUED)
    source = await make_source(brief)
    for score in (10, 20, 30):
        await make_item(source, score=score, status=ItemStatus.DONE, published_at=NOW - timedelta(hours=1))

    report = await execute_brief(db, brief.id, settings, NOW)
    entries = await repository.get_report_entries(db, report.id)
    assert [e.score for e, _ in entries] == [30, 20]


async def test_execute_brief_with_no_items_creates_empty_report(db, settings, make_brief):
    brief = await make_brief(status=BriefStatus.QUEUED)

    report = await execute_brief(db, brief.id, settings, NOW)

    assert report is not None
    assert await repository.get_report_entries(db, report.id) == []
    assert (await repository.get_latest_report(db, brief.id)).id == report.id


async def test_execute_brief_skips_unless_queued(db, settings, make_brief):
    brief = await make_brief(status=BriefStatus.ACTIVE)
    assert await execute_brief(db, brief.id, settings, NOW) is None
    assert await repository.get_latest_report(db, brief.id) is None


async def test_second_execution_only_sees_newer_items(db, settings, make_brief, make_source, make_item):
    brief = await make_brief(status=BriefStatus.QUEUED)
    source = await make_source(brief)
    await make_item(source, score=60, status=ItemStatus.DONE, published_at=NOW - timedelta(hours=1))
    await execute_brief(db, brief.id, settings, NOW)

    later = NOW + timedelta(days=1)
    fresh = await make_item(source, score=40, status=ItemStatus.DONE, published_at=later - timedelta(hours=1))
    assert await repository.claim_brief_for_queue(db, brief.id, later)
    report = await execute_brief(db, brief.id, settings, later)

    entries = await repository.get_report_entries(db, report.id)
    assert [i.id for _, i in entries] == [fresh.id]
