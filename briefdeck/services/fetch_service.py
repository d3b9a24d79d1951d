"""Fetch scheduling and the fetch worker body."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.constants import MAX_ERROR_LENGTH, MAX_LINK_LENGTH, MAX_TITLE_LENGTH
from briefdeck.db import repository
from briefdeck.models import FetchStatus, Item, ItemStatus, Source, SourceStatus
from briefdeck.queue import JobQueue
from briefdeck.services.fetchers import (
    FetchedItem,
    FetcherRegistry,
    SourceFetchError,
    SourceInvalidError,
)
from briefdeck.services.url_normalizer import normalize
from briefdeck.utils import ensure_utc, now_utc, truncate

logger = logging.getLogger(__name__)

# Candidates are over-selected because not every IDLE source is due yet
_CANDIDATE_FACTOR = 5


def is_source_due(source: Source, now: datetime) -> bool:
    """Never fetched, or at least one refresh interval since the last fetch."""
    last = ensure_utc(source.last_fetched_at)
    if last is None:
        return True
    return now - last >= timedelta(minutes=source.refresh_interval_minutes)


async def schedule_due_sources(
    db: AsyncSession,
    queue: JobQueue,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> int:
    """Claim due sources (IDLE -> QUEUED) and enqueue a fetch job for each.

    Returns the number of jobs enqueued.
    """
    settings = settings or get_settings()
    now = now or now_utc()

    candidates = await repository.find_fetch_candidates(db, settings.fetch_batch_size * _CANDIDATE_FACTOR)
    due = [s for s in candidates if is_source_due(s, now)][: settings.fetch_batch_size]

    enqueued = 0
    for source in due:
        if not await repository.claim_source_for_queue(db, source.id, now):
            logger.debug("Source %s claimed elsewhere, skipping", source.id)
            continue
        try:
            await queue.enqueue_fetch(source.id)
        except Exception as e:
            logger.error("Failed to enqueue fetch for source %s: %s", source.id, e)
            await repository.release_queued_source(db, source.id)
            continue
        enqueued += 1

    logger.info("Fetch scheduler: %d candidates, %d due, %d enqueued", len(candidates), len(due), enqueued)
    return enqueued


async def _finish_fetch(
    db: AsyncSession,
    source_id: int,
    now: datetime,
    *,
    error: str | None = None,
    permanent: bool = False,
    etag: str | None = None,
    last_modified: str | None = None,
) -> None:
    values: dict = {
        "fetch_status": FetchStatus.IDLE,
        "queued_at": None,
        "fetch_started_at": None,
    }
    if error is None:
        values.update(last_fetched_at=now, last_error=None, etag=etag, last_modified=last_modified)
    else:
        values["last_error"] = truncate(error, MAX_ERROR_LENGTH)
        if permanent:
            values["status"] = SourceStatus.ERROR

    await db.execute(
        update(Source)
        .where(Source.id == source_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def store_new_items(
    db: AsyncSession,
    source: Source,
    fetched: list[FetchedItem],
    initial_status: ItemStatus = ItemStatus.NEW,
    now: datetime | None = None,
) -> list[int]:
    """Insert the fetched items not yet stored for *source*. Returns new item ids.

    Commits. Duplicates, against the database or within *fetched*, are skipped.
    """
    now = now or now_utc()
    by_guid: dict[str, FetchedItem] = {}
    for entry in fetched:
        if entry.guid and entry.guid not in by_guid:
            by_guid[entry.guid] = entry

    known = await repository.existing_guids(db, source.id, list(by_guid))
    new_items: list[Item] = []
    for guid, entry in by_guid.items():
        if guid in known:
            continue
        item = Item(
            source_id=source.id,
            guid=guid,
            title=truncate(entry.title, MAX_TITLE_LENGTH),
            link=truncate(normalize(entry.link), MAX_LINK_LENGTH),
            author=entry.author,
            published_at=entry.published_at,
            raw_content=entry.raw_content,
            clean_content=entry.clean_content,
            status=initial_status,
            status_changed_at=now,
        )
        db.add(item)
        new_items.append(item)

    if not new_items:
        return []
    await db.flush()
    new_ids = [item.id for item in new_items]
    await db.commit()
    return new_ids


async def run_fetch_job(
    db: AsyncSession,
    source_id: int,
    registry: FetcherRegistry,
    queue: JobQueue,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> int:
    """Fetch one source. Idempotent: anything but a QUEUED source is a no-op.

    Returns the number of new items stored. Never leaves the source FETCHING
    and never raises for a fetch failure.
    """
    settings = settings or get_settings()
    now = now or now_utc()

    if not await repository.claim_source_for_fetch(db, source_id, now):
        logger.debug("Source %s is not QUEUED, skipping fetch job", source_id)
        return 0

    source = await repository.get_source(db, source_id)
    if source is None:
        return 0
    if source.status != SourceStatus.ACTIVE:
        logger.info("Source %s is %s, releasing fetch lock", source_id, source.status)
        await repository.release_fetch_lock(db, source_id)
        return 0

    fetcher = registry.get(source.type)
    if fetcher is None:
        await _finish_fetch(db, source_id, now, error=f"No fetcher for source type {source.type}", permanent=True)
        return 0

    first_fetch = source.last_fetched_at is None
    previous_etag, previous_last_modified = source.etag, source.last_modified
    initial_status = (
        ItemStatus.DONE if first_fetch and settings.skip_processing_on_first_import else ItemStatus.NEW
    )

    try:
        result = await fetcher.fetch(source, ensure_utc(source.last_fetched_at))
        new_ids = await store_new_items(db, source, result.items, initial_status, now)
    except SourceInvalidError as e:
        await db.rollback()
        logger.warning("Source %s failed permanently: %s", source_id, e)
        await _finish_fetch(db, source_id, now, error=str(e), permanent=True)
        return 0
    except SourceFetchError as e:
        await db.rollback()
        logger.warning("Source %s fetch failed: %s", source_id, e)
        await _finish_fetch(db, source_id, now, error=str(e))
        return 0
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Source %s hit a duplicate item while storing: %s", source_id, e.orig)
        await _finish_fetch(db, source_id, now, error=f"Duplicate item while storing: {e.orig}")
        return 0
    except Exception as e:
        await db.rollback()
        logger.exception("Unexpected error fetching source %s", source_id)
        await _finish_fetch(db, source_id, now, error=f"Unexpected error: {e}")
        return 0

    etag = previous_etag if result.not_modified else result.etag
    last_modified = previous_last_modified if result.not_modified else result.last_modified
    await _finish_fetch(db, source_id, now, etag=etag, last_modified=last_modified)

    if initial_status == ItemStatus.NEW:
        for item_id in new_ids:
            try:
                await queue.enqueue_processing(item_id)
            except Exception as e:
                # The processing sweep picks up NEW items that were never enqueued
                logger.warning("Failed to enqueue processing for item %s: %s", item_id, e)

    logger.info("Source %s: %d new items (%d fetched)", source_id, len(new_ids), len(result.items))
    return len(new_ids)
