"""Scheduler tasks: periodic ticks that find due work and enqueue it."""

import logging

from briefdeck.db.session import async_session_factory
from briefdeck.queue import ArqJobQueue, JobQueue
from briefdeck.services.brief_schedule import schedule_due_briefs
from briefdeck.services.fetch_service import schedule_due_sources
from briefdeck.services.processing_service import sweep_new_items
from briefdeck.services.recovery_service import recover_stuck_work

logger = logging.getLogger(__name__)


def _queue_from_ctx(ctx: dict) -> JobQueue:
    queue = ctx.get("job_queue")
    if queue is None:
        queue = ArqJobQueue(ctx["redis"])
        ctx["job_queue"] = queue
    return queue


async def enqueue_due_sources(ctx: dict) -> int:
    """Every minute: queue fetch jobs for sources whose refresh interval elapsed."""
    async with async_session_factory() as db:
        return await schedule_due_sources(db, _queue_from_ctx(ctx))


async def enqueue_new_items(ctx: dict) -> int:
    """Every minute: queue processing for NEW items that never got a job."""
    async with async_session_factory() as db:
        return await sweep_new_items(db, _queue_from_ctx(ctx))


async def enqueue_due_briefs(ctx: dict) -> int:
    """Every minute: queue executions for briefs whose local schedule time passed."""
    async with async_session_factory() as db:
        return await schedule_due_briefs(db, _queue_from_ctx(ctx))


async def recover_stuck(ctx: dict) -> dict[str, int]:
    """Every five minutes: release work abandoned by crashed workers."""
    async with async_session_factory() as db:
        counts = await recover_stuck_work(db, _queue_from_ctx(ctx))
    if any(counts.values()):
        logger.info("Recovery: %s", counts)
    return counts
