"""Processing worker body: enrich and score one item, with retry and backoff."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.constants import CONTENT_LENGTH_THRESHOLD, MAX_ERROR_LENGTH
from briefdeck.db import repository
from briefdeck.models import Item, ItemStatus
from briefdeck.queue import JobQueue
from briefdeck.services.scoring_service import Scorer, ScoringError
from briefdeck.services.web_content import fetch_article_text
from briefdeck.utils import now_utc, truncate

logger = logging.getLogger(__name__)

WebFetch = Callable[[str], Awaitable[str | None]]

# NEW items younger than this are assumed to have a processing job in flight
SWEEP_GRACE_MINUTES = 2


def needs_web_content(link: str | None, content: str | None) -> bool:
    """Only http(s) links whose feed content is short get the full article pulled."""
    if not link:
        return False
    lowered = link.lower()
    if not (lowered.startswith("http://") or lowered.startswith("https://")):
        return False
    return len(content or "") <= CONTENT_LENGTH_THRESHOLD


def retry_delay_seconds(attempts: int, base_seconds: int) -> int:
    """Exponential backoff: base, 2x base, 4x base ... for attempts 1, 2, 3 ..."""
    return base_seconds * 2 ** max(attempts - 1, 0)


async def record_failure(
    db: AsyncSession,
    item_id: int,
    attempts: int,
    error: str,
    queue: JobQueue,
    settings: Settings,
    now: datetime,
    retryable: bool = True,
) -> ItemStatus:
    """Count a failed attempt: back to PENDING with a delayed retry, or ERROR when exhausted."""
    if retryable and attempts < settings.processing_max_attempts:
        status = ItemStatus.PENDING
    else:
        status = ItemStatus.ERROR

    await db.execute(
        update(Item)
        .where(Item.id == item_id, Item.status == ItemStatus.PROCESSING)
        .values(
            status=status,
            attempts=attempts,
            error_message=truncate(error, MAX_ERROR_LENGTH),
            status_changed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if status == ItemStatus.PENDING:
        delay = retry_delay_seconds(attempts, settings.processing_retry_base_seconds)
        logger.info("Item %s failed (attempt %d), retrying in %ds: %s", item_id, attempts, delay, error)
        try:
            await queue.enqueue_processing(item_id, defer_seconds=delay)
        except Exception as e:
            # Stuck recovery re-enqueues PENDING items
            logger.warning("Failed to enqueue retry for item %s: %s", item_id, e)
    else:
        logger.warning("Item %s failed after %d attempts: %s", item_id, attempts, error)
    return status


async def process_item(
    db: AsyncSession,
    item_id: int,
    scorer: Scorer,
    queue: JobQueue,
    settings: Settings | None = None,
    web_fetch: WebFetch | None = None,
    now: datetime | None = None,
) -> ItemStatus | None:
    """Claim, enrich and score one item.

    Returns the resulting status, or None when the item was not claimable
    (already taken, finished or deleted).
    """
    settings = settings or get_settings()
    web_fetch = web_fetch or fetch_article_text
    now = now or now_utc()

    if not await repository.claim_item(db, item_id, now):
        logger.debug("Item %s not claimable, skipping", item_id)
        return None

    item = await repository.get_item(db, item_id)
    if item is None:
        return None
    attempts = item.attempts + 1

    try:
        criteria = await repository.get_criteria_for_item(db, item_id) or ""
        content = item.content
        web_content = None
        if needs_web_content(item.link, content):
            web_content = await web_fetch(item.link)

        result = await scorer.enrich_with_score(item.title or "", content, web_content, criteria)
    except Exception as e:
        await db.rollback()
        retryable = not isinstance(e, ScoringError) or e.retryable
        return await record_failure(
            db, item_id, attempts, str(e) or type(e).__name__, queue, settings, now, retryable=retryable
        )

    if result.score is None:
        logger.info("Item %s scored without a usable score; it will not enter reports", item_id)

    await db.execute(
        update(Item)
        .where(Item.id == item_id, Item.status == ItemStatus.PROCESSING)
        .values(
            web_content=web_content,
            summary=result.summary or None,
            tags=result.tags(),
            score=result.score,
            score_reasoning=result.score_reasoning,
            status=ItemStatus.DONE,
            attempts=attempts,
            error_message=None,
            status_changed_at=now_utc(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.debug("Item %s processed, score=%s", item_id, result.score)
    return ItemStatus.DONE


async def sweep_new_items(
    db: AsyncSession,
    queue: JobQueue,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> int:
    """Enqueue NEW items that never got a processing job (email items, lost jobs)."""
    settings = settings or get_settings()
    now = now or now_utc()

    item_ids = await repository.find_new_items(
        db, now - timedelta(minutes=SWEEP_GRACE_MINUTES), settings.processing_batch_size
    )
    enqueued = 0
    for item_id in item_ids:
        try:
            await queue.enqueue_processing(item_id)
        except Exception as e:
            logger.error("Failed to enqueue processing for item %s: %s", item_id, e)
            continue
        await repository.mark_item_pending(db, item_id, now)
        enqueued += 1

    if item_ids:
        logger.info("Processing sweep: %d NEW items, %d enqueued", len(item_ids), enqueued)
    return enqueued
