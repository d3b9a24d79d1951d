"""Stuck-work recovery: release locks held by workers that died mid-job."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.db import repository
from briefdeck.models import FetchStatus, ItemStatus
from briefdeck.queue import JobQueue
from briefdeck.services.processing_service import record_failure
from briefdeck.utils import now_utc

logger = logging.getLogger(__name__)


async def recover_stuck_sources(db: AsyncSession, settings: Settings, now: datetime) -> int:
    threshold = now - timedelta(minutes=settings.fetch_stuck_minutes)
    recovered = 0
    for status in (FetchStatus.QUEUED, FetchStatus.FETCHING):
        count = await repository.reset_stuck_sources(db, status, threshold)
        if count:
            logger.warning("Reset %d sources stuck in %s", count, status)
        recovered += count
    return recovered


async def recover_stuck_items(db: AsyncSession, queue: JobQueue, settings: Settings, now: datetime) -> int:
    threshold = now - timedelta(minutes=settings.processing_stuck_minutes)
    recovered = 0

    stuck = [(item.id, item.attempts) for item in await repository.find_items_stuck_in(db, ItemStatus.PROCESSING, threshold)]
    for item_id, attempts in stuck:
        await record_failure(db, item_id, attempts + 1, "Processing timed out", queue, settings, now)
        recovered += 1

    pending = [item.id for item in await repository.find_items_stuck_in(db, ItemStatus.PENDING, threshold)]
    for item_id in pending:
        if not await repository.touch_pending_item(db, item_id, now):
            continue
        try:
            await queue.enqueue_processing(item_id)
        except Exception as e:
            logger.error("Failed to re-enqueue pending item %s: %s", item_id, e)
            continue
        recovered += 1

    if recovered:
        logger.warning("Recovered %d stuck items", recovered)
    return recovered


async def recover_stuck_briefs(db: AsyncSession, settings: Settings, now: datetime) -> int:
    threshold = now - timedelta(minutes=settings.brief_stuck_minutes)
    count = await repository.reset_stuck_briefs(db, threshold, "Execution timed out; will retry next window")
    if count:
        logger.warning("Reset %d stuck briefs", count)
    return count


async def recover_stuck_work(
    db: AsyncSession,
    queue: JobQueue,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Run all recovery passes. Returns recovered counts per entity."""
    settings = settings or get_settings()
    now = now or now_utc()
    return {
        "sources": await recover_stuck_sources(db, settings, now),
        "items": await recover_stuck_items(db, queue, settings, now),
        "briefs": await recover_stuck_briefs(db, settings, now),
    }
