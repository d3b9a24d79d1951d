"""Brief worker body: compile the top-scored items into a report."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.constants import DAILY_LOOKBACK_DAYS, MAX_ERROR_LENGTH, WEEKLY_LOOKBACK_DAYS
from briefdeck.db import repository
from briefdeck.models import Brief, BriefFrequency, Report, ReportItem, ReportStatus
from briefdeck.utils import ensure_utc, now_utc, truncate

logger = logging.getLogger(__name__)


def compute_since(brief: Brief, now: datetime) -> datetime:
    """Items newer than the last execution, or the frequency's lookback on the first run."""
    last = ensure_utc(brief.last_executed_at)
    if last is not None:
        return last
    days = WEEKLY_LOOKBACK_DAYS if brief.frequency == BriefFrequency.WEEKLY else DAILY_LOOKBACK_DAYS
    return now - timedelta(days=days)


async def generate_report(db: AsyncSession, brief: Brief, now: datetime, limit: int) -> Report:
    """Snapshot the current ranking into a Report. Commits."""
    items = await repository.find_top_scored_items(db, brief.id, compute_since(brief, now), limit)

    report = Report(brief_id=brief.id, generated_at=now, status=ReportStatus.GENERATED)
    db.add(report)
    await db.flush()
    for position, item in enumerate(items, start=1):
        db.add(ReportItem(report_id=report.id, item_id=item.id, position=position, score=item.score))
    await db.commit()

    logger.info("Generated report %s for brief %s with %d items", report.id, brief.id, len(items))
    return report


async def execute_brief(
    db: AsyncSession,
    brief_id: int,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> Report | None:
    """Run one queued brief. Redelivered or stale jobs are no-ops (returns None)."""
    settings = settings or get_settings()
    now = now or now_utc()

    if not await repository.claim_brief_for_execution(db, brief_id, now):
        logger.debug("Brief %s is not QUEUED, skipping execution", brief_id)
        return None

    brief = await repository.get_brief(db, brief_id)
    if brief is None:
        return None

    try:
        report = await generate_report(db, brief, now, settings.max_report_items)
    except Exception as e:
        await db.rollback()
        logger.exception("Brief %s execution failed", brief_id)
        await repository.finish_brief_execution(
            db, brief_id, executed_at=None, error_message=truncate(str(e), MAX_ERROR_LENGTH)
        )
        return None

    await repository.finish_brief_execution(db, brief_id, executed_at=now)
    return report
