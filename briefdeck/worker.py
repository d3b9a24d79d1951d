"""ARQ workers: background job processing.

Three worker processes share this module:

    arq briefdeck.worker.WorkerSettings            # cron ticks, briefs, inbound email
    arq briefdeck.worker.FetchWorkerSettings       # source fetches
    arq briefdeck.worker.ProcessingWorkerSettings  # item enrichment and scoring
"""

import logging

from arq import cron

from briefdeck.config import get_settings
from briefdeck.constants import ARQ_JOB_TIMEOUT, DEFAULT_QUEUE_NAME, FETCH_QUEUE_NAME, PROCESSING_QUEUE_NAME
from briefdeck.queue import ArqJobQueue, redis_settings
from briefdeck.utils import setup_logging

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    from briefdeck.http_client import init_http_client
    from briefdeck.services.blob_storage import BlobStorage
    from briefdeck.services.fetchers import build_registry
    from briefdeck.services.scoring_service import get_scorer

    settings = get_settings()
    setup_logging(settings.debug)
    await init_http_client()
    ctx["job_queue"] = ArqJobQueue(ctx["redis"])
    ctx["scorer"] = get_scorer(settings)
    ctx["registry"] = build_registry(ctx["scorer"], settings)
    ctx["blob_storage"] = BlobStorage(settings.blob_storage_dir)


async def shutdown(ctx: dict) -> None:
    from briefdeck.http_client import close_http_client

    await close_http_client()


async def fetch_source_job(ctx: dict, source_id: int) -> int:
    """ARQ job: fetch one source and store its new items."""
    from briefdeck.db.session import async_session_factory
    from briefdeck.services.fetch_service import run_fetch_job

    async with async_session_factory() as db:
        return await run_fetch_job(db, source_id, ctx["registry"], ctx["job_queue"])


async def process_item_job(ctx: dict, item_id: int) -> str | None:
    """ARQ job: enrich and score one item."""
    from briefdeck.db.session import async_session_factory
    from briefdeck.services.processing_service import process_item

    async with async_session_factory() as db:
        status = await process_item(db, item_id, ctx["scorer"], ctx["job_queue"])
    return str(status) if status else None


async def execute_brief_job(ctx: dict, brief_id: int) -> int | None:
    """ARQ job: build a report for one queued brief."""
    from briefdeck.db.session import async_session_factory
    from briefdeck.services.report_service import execute_brief

    async with async_session_factory() as db:
        report = await execute_brief(db, brief_id)
    return report.id if report else None


async def ingest_email_job(ctx: dict, event: dict) -> int:
    """ARQ job: route an inbound email to its source."""
    from briefdeck.db.session import async_session_factory
    from briefdeck.schemas.email import InboundEmail
    from briefdeck.services.email_ingestion import ingest_email

    email = InboundEmail.model_validate(event)
    async with async_session_factory() as db:
        new_ids = await ingest_email(db, email, ctx["scorer"], ctx["blob_storage"], ctx["job_queue"])
    return len(new_ids)


async def fetch_tick(ctx: dict) -> None:
    from briefdeck.scheduler_tasks import enqueue_due_sources

    await enqueue_due_sources(ctx)


async def processing_tick(ctx: dict) -> None:
    from briefdeck.scheduler_tasks import enqueue_new_items

    await enqueue_new_items(ctx)


async def brief_tick(ctx: dict) -> None:
    from briefdeck.scheduler_tasks import enqueue_due_briefs

    await enqueue_due_briefs(ctx)


async def recovery_tick(ctx: dict) -> None:
    from briefdeck.scheduler_tasks import recover_stuck

    await recover_stuck(ctx)


class WorkerSettings:
    """Scheduler worker: cron ticks, brief executions and inbound email."""

    functions = [execute_brief_job, ingest_email_job]
    cron_jobs = [
        cron(fetch_tick),  # Every minute
        cron(processing_tick),
        cron(brief_tick),
        cron(recovery_tick, minute=set(range(0, 60, 5))),
    ]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings()
    queue_name = DEFAULT_QUEUE_NAME

    max_jobs = 10
    job_timeout = ARQ_JOB_TIMEOUT


class FetchWorkerSettings:
    """Fetch worker: max_jobs bounds concurrent outbound fetches."""

    functions = [fetch_source_job]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings()
    queue_name = FETCH_QUEUE_NAME

    max_jobs = get_settings().fetch_worker_count
    job_timeout = ARQ_JOB_TIMEOUT


class ProcessingWorkerSettings:
    """Processing worker: max_jobs bounds concurrent LLM calls."""

    functions = [process_item_job]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings()
    queue_name = PROCESSING_QUEUE_NAME

    max_jobs = get_settings().processing_worker_count
    job_timeout = ARQ_JOB_TIMEOUT
