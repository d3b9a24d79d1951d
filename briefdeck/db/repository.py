"""Repository queries and atomic state transitions.

Every cross-entity read is an explicit query here; models carry foreign-key
ids only. Status columns double as locks: each ``claim_*`` function is a
single ``UPDATE ... WHERE status = expected`` and reports whether this caller
won the transition.
"""

from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.models import (
    Brief,
    BriefStatus,
    FetchStatus,
    Item,
    ItemStatus,
    RawEmail,
    Report,
    ReportItem,
    Source,
    SourceStatus,
    SourceType,
)


async def _cas(db: AsyncSession, stmt) -> bool:
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    return result.rowcount == 1


# --- Briefs ---


async def get_brief(db: AsyncSession, brief_id: int) -> Brief | None:
    return await db.get(Brief, brief_id, populate_existing=True)


async def find_active_briefs(db: AsyncSession) -> list[Brief]:
    result = await db.execute(
        select(Brief).where(Brief.status == BriefStatus.ACTIVE).order_by(Brief.id)
    )
    return list(result.scalars().all())


async def claim_brief_for_queue(db: AsyncSession, brief_id: int, now: datetime) -> bool:
    """ACTIVE -> QUEUED."""
    return await _cas(
        db,
        update(Brief)
        .where(Brief.id == brief_id, Brief.status == BriefStatus.ACTIVE)
        .values(status=BriefStatus.QUEUED, queued_at=now),
    )


async def release_queued_brief(db: AsyncSession, brief_id: int) -> bool:
    """QUEUED -> ACTIVE, used when the enqueue itself failed."""
    return await _cas(
        db,
        update(Brief)
        .where(Brief.id == brief_id, Brief.status == BriefStatus.QUEUED)
        .values(status=BriefStatus.ACTIVE, queued_at=None),
    )


async def claim_brief_for_execution(db: AsyncSession, brief_id: int, now: datetime) -> bool:
    """QUEUED -> PROCESSING."""
    return await _cas(
        db,
        update(Brief)
        .where(Brief.id == brief_id, Brief.status == BriefStatus.QUEUED)
        .values(status=BriefStatus.PROCESSING, processing_started_at=now),
    )


async def finish_brief_execution(
    db: AsyncSession,
    brief_id: int,
    executed_at: datetime | None,
    error_message: str | None = None,
) -> bool:
    """PROCESSING -> ACTIVE, stamping last_executed_at on success."""
    values = {
        "status": BriefStatus.ACTIVE,
        "queued_at": None,
        "processing_started_at": None,
        "error_message": error_message,
    }
    if executed_at is not None:
        values["last_executed_at"] = executed_at
    return await _cas(
        db,
        update(Brief)
        .where(Brief.id == brief_id, Brief.status == BriefStatus.PROCESSING)
        .values(**values),
    )


async def reset_stuck_briefs(db: AsyncSession, threshold: datetime, error_message: str) -> int:
    result = await db.execute(
        update(Brief)
        .where(
            or_(
                (Brief.status == BriefStatus.QUEUED) & (Brief.queued_at < threshold),
                (Brief.status == BriefStatus.PROCESSING) & (Brief.processing_started_at < threshold),
            )
        )
        .values(
            status=BriefStatus.ACTIVE,
            queued_at=None,
            processing_started_at=None,
            error_message=error_message,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def delete_brief(db: AsyncSession, brief_id: int) -> bool:
    """Delete a brief; sources, items, raw emails and reports go with it (FK cascade)."""
    result = await db.execute(delete(Brief).where(Brief.id == brief_id))
    await db.commit()
    return result.rowcount == 1


# --- Sources ---


async def get_source(db: AsyncSession, source_id: int) -> Source | None:
    return await db.get(Source, source_id, populate_existing=True)


async def get_source_by_email_address(db: AsyncSession, token: str) -> Source | None:
    result = await db.execute(
        select(Source).where(Source.type == SourceType.EMAIL, Source.email_address == token)
    )
    return result.scalar_one_or_none()


async def source_url_exists(db: AsyncSession, brief_id: int, url: str) -> bool:
    result = await db.execute(
        select(Source.id).where(Source.brief_id == brief_id, Source.url == url).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_sources_for_brief(db: AsyncSession, brief_id: int) -> list[Source]:
    result = await db.execute(select(Source).where(Source.brief_id == brief_id).order_by(Source.id))
    return list(result.scalars().all())


async def find_fetch_candidates(db: AsyncSession, limit: int) -> list[Source]:
    """ACTIVE, IDLE, schedulable sources; never-fetched first."""
    result = await db.execute(
        select(Source)
        .where(
            Source.status == SourceStatus.ACTIVE,
            Source.fetch_status == FetchStatus.IDLE,
            Source.type != SourceType.EMAIL,
            Source.refresh_interval_minutes > 0,
        )
        .order_by(Source.last_fetched_at.asc().nulls_first(), Source.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def claim_source_for_queue(db: AsyncSession, source_id: int, now: datetime) -> bool:
    """IDLE -> QUEUED, only for ACTIVE sources."""
    return await _cas(
        db,
        update(Source)
        .where(
            Source.id == source_id,
            Source.status == SourceStatus.ACTIVE,
            Source.fetch_status == FetchStatus.IDLE,
        )
        .values(fetch_status=FetchStatus.QUEUED, queued_at=now),
    )


async def release_queued_source(db: AsyncSession, source_id: int) -> bool:
    """QUEUED -> IDLE, used when the enqueue itself failed."""
    return await _cas(
        db,
        update(Source)
        .where(Source.id == source_id, Source.fetch_status == FetchStatus.QUEUED)
        .values(fetch_status=FetchStatus.IDLE, queued_at=None),
    )


async def claim_source_for_fetch(db: AsyncSession, source_id: int, now: datetime) -> bool:
    """QUEUED -> FETCHING."""
    return await _cas(
        db,
        update(Source)
        .where(Source.id == source_id, Source.fetch_status == FetchStatus.QUEUED)
        .values(fetch_status=FetchStatus.FETCHING, fetch_started_at=now),
    )


async def release_fetch_lock(db: AsyncSession, source_id: int) -> bool:
    """FETCHING -> IDLE without touching fetch bookkeeping."""
    return await _cas(
        db,
        update(Source)
        .where(Source.id == source_id, Source.fetch_status == FetchStatus.FETCHING)
        .values(fetch_status=FetchStatus.IDLE, queued_at=None, fetch_started_at=None),
    )


async def reset_stuck_sources(db: AsyncSession, fetch_status: FetchStatus, threshold: datetime) -> int:
    stamp = Source.queued_at if fetch_status == FetchStatus.QUEUED else Source.fetch_started_at
    result = await db.execute(
        update(Source)
        .where(Source.fetch_status == fetch_status, stamp < threshold)
        .values(fetch_status=FetchStatus.IDLE, queued_at=None, fetch_started_at=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


# --- Items ---


async def get_item(db: AsyncSession, item_id: int) -> Item | None:
    return await db.get(Item, item_id, populate_existing=True)


async def existing_guids(db: AsyncSession, source_id: int, guids: list[str]) -> set[str]:
    """Batch dedup lookup: which of *guids* are already stored for the source."""
    if not guids:
        return set()
    result = await db.execute(
        select(Item.guid).where(Item.source_id == source_id, Item.guid.in_(guids))
    )
    return {row[0] for row in result.all()}


async def item_exists(db: AsyncSession, source_id: int, guid: str) -> bool:
    return bool(await existing_guids(db, source_id, [guid]))


async def claim_item(db: AsyncSession, item_id: int, now: datetime) -> bool:
    """NEW/PENDING -> PROCESSING."""
    return await _cas(
        db,
        update(Item)
        .where(Item.id == item_id, Item.status.in_([ItemStatus.NEW, ItemStatus.PENDING]))
        .values(status=ItemStatus.PROCESSING, status_changed_at=now),
    )


async def mark_item_pending(db: AsyncSession, item_id: int, now: datetime) -> bool:
    """NEW -> PENDING, used by the processing sweep before enqueueing."""
    return await _cas(
        db,
        update(Item)
        .where(Item.id == item_id, Item.status == ItemStatus.NEW)
        .values(status=ItemStatus.PENDING, status_changed_at=now),
    )


async def touch_pending_item(db: AsyncSession, item_id: int, now: datetime) -> bool:
    """Restamp a PENDING item so the next recovery pass leaves it alone."""
    return await _cas(
        db,
        update(Item)
        .where(Item.id == item_id, Item.status == ItemStatus.PENDING)
        .values(status_changed_at=now),
    )


async def find_new_items(db: AsyncSession, older_than: datetime, limit: int) -> list[int]:
    """NEW items that have waited since before *older_than* for a processing job."""
    result = await db.execute(
        select(Item.id)
        .where(Item.status == ItemStatus.NEW, Item.status_changed_at < older_than)
        .order_by(Item.id)
        .limit(limit)
    )
    return [row[0] for row in result.all()]


async def find_items_stuck_in(db: AsyncSession, status: ItemStatus, threshold: datetime) -> list[Item]:
    result = await db.execute(
        select(Item).where(Item.status == status, Item.status_changed_at < threshold).order_by(Item.id)
    )
    return list(result.scalars().all())


async def get_criteria_for_item(db: AsyncSession, item_id: int) -> str | None:
    """Resolve the owning brief's interest criteria (Item -> Source -> Brief)."""
    result = await db.execute(
        select(Brief.criteria)
        .join(Source, Source.brief_id == Brief.id)
        .join(Item, Item.source_id == Source.id)
        .where(Item.id == item_id)
    )
    return result.scalar_one_or_none()


async def find_top_scored_items(
    db: AsyncSession, brief_id: int, since: datetime, limit: int
) -> list[Item]:
    """DONE, scored items of the brief's sources published after *since*, best first."""
    result = await db.execute(
        select(Item)
        .join(Source, Source.id == Item.source_id)
        .where(
            Source.brief_id == brief_id,
            Item.status == ItemStatus.DONE,
            Item.published_at > since,
            Item.score.is_not(None),
        )
        .order_by(Item.score.desc(), Item.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


# --- Raw emails ---


async def raw_email_exists(db: AsyncSession, source_id: int, message_id: str) -> bool:
    result = await db.execute(
        select(RawEmail.id).where(RawEmail.source_id == source_id, RawEmail.message_id == message_id).limit(1)
    )
    return result.scalar_one_or_none() is not None


# --- Reports ---


async def get_latest_report(db: AsyncSession, brief_id: int) -> Report | None:
    result = await db.execute(
        select(Report)
        .where(Report.brief_id == brief_id)
        .order_by(Report.generated_at.desc(), Report.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_report_entries(db: AsyncSession, report_id: int) -> list[tuple[ReportItem, Item]]:
    result = await db.execute(
        select(ReportItem, Item)
        .join(Item, Item.id == ReportItem.item_id)
        .where(ReportItem.report_id == report_id)
        .order_by(ReportItem.position)
    )
    return [(row[0], row[1]) for row in result.all()]
