"""Brief scheduler: decides which briefs are due and queues their execution."""

import logging
from datetime import datetime, timedelta, UTC
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.db import repository
from briefdeck.models import Brief, BriefFrequency
from briefdeck.queue import JobQueue
from briefdeck.utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)


class BriefNotQueuedError(Exception):
    """Raised when a brief cannot be queued for execution right now."""


def resolve_timezone(name: str | None) -> ZoneInfo:
    """ZoneInfo for *name*, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning("Invalid timezone '%s', falling back to UTC: %s", name, e)
        return ZoneInfo("UTC")


def _has_weekday(brief: Brief) -> bool:
    return brief.frequency == BriefFrequency.WEEKLY and brief.schedule_day_of_week is not None


def is_due(brief: Brief, now: datetime) -> bool:
    """True once the brief's local schedule time has passed today (on the right weekday)."""
    local_now = now.astimezone(resolve_timezone(brief.timezone))
    if _has_weekday(brief) and local_now.weekday() != brief.schedule_day_of_week:
        return False
    return local_now.time() >= brief.schedule_time


def window_start(brief: Brief, now: datetime) -> datetime:
    """Start of the schedule window containing *now*, in UTC.

    Today's schedule time in the brief's timezone; for WEEKLY briefs without
    a weekday the window reaches back six more days.
    """
    tz = resolve_timezone(brief.timezone)
    local_now = now.astimezone(tz)
    start = datetime.combine(local_now.date(), brief.schedule_time, tzinfo=tz)
    if brief.frequency == BriefFrequency.WEEKLY and brief.schedule_day_of_week is None:
        start -= timedelta(days=6)
    return start.astimezone(UTC)


def already_executed(brief: Brief, now: datetime) -> bool:
    last = ensure_utc(brief.last_executed_at)
    return last is not None and last >= window_start(brief, now)


def should_run(brief: Brief, now: datetime) -> bool:
    return is_due(brief, now) and not already_executed(brief, now)


async def _queue_brief(db: AsyncSession, queue: JobQueue, brief_id: int, now: datetime) -> bool:
    if not await repository.claim_brief_for_queue(db, brief_id, now):
        return False
    try:
        await queue.enqueue_brief(brief_id)
    except Exception as e:
        logger.error("Failed to enqueue brief %s: %s", brief_id, e)
        await repository.release_queued_brief(db, brief_id)
        return False
    return True


async def schedule_due_briefs(db: AsyncSession, queue: JobQueue, now: datetime | None = None) -> int:
    """Claim and enqueue every ACTIVE brief that is due and not yet run this window."""
    now = now or now_utc()
    briefs = await repository.find_active_briefs(db)
    due_ids = [brief.id for brief in briefs if should_run(brief, now)]

    enqueued = 0
    for brief_id in due_ids:
        if await _queue_brief(db, queue, brief_id, now):
            enqueued += 1
            logger.info("Queued brief %s for execution", brief_id)

    logger.info("Brief scheduler: checked %d briefs, %d due, %d enqueued", len(briefs), len(due_ids), enqueued)
    return enqueued


async def execute_brief_now(db: AsyncSession, queue: JobQueue, brief_id: int, now: datetime | None = None) -> None:
    """Queue an immediate execution regardless of the schedule.

    Raises BriefNotQueuedError when the brief is missing or not ACTIVE.
    """
    now = now or now_utc()
    brief = await repository.get_brief(db, brief_id)
    if brief is None:
        raise BriefNotQueuedError(f"Brief {brief_id} not found")
    if not await _queue_brief(db, queue, brief_id, now):
        raise BriefNotQueuedError(f"Brief {brief_id} is not ACTIVE or could not be queued")
