"""Job queue seam between the schedulers and the ARQ workers."""

import logging
from typing import Protocol

from arq import ArqRedis, create_pool
from arq.connections import RedisSettings

from briefdeck.config import get_settings
from briefdeck.constants import DEFAULT_QUEUE_NAME, FETCH_QUEUE_NAME, PROCESSING_QUEUE_NAME

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Raised when a job could not be handed to the broker."""


class JobQueue(Protocol):
    async def enqueue_fetch(self, source_id: int) -> None: ...

    async def enqueue_processing(self, item_id: int, defer_seconds: int = 0) -> None: ...

    async def enqueue_brief(self, brief_id: int) -> None: ...

    async def enqueue_email(self, event: dict) -> None: ...


class ArqJobQueue:
    """JobQueue backed by ARQ; each job kind goes to its own Redis queue."""

    def __init__(self, redis: ArqRedis):
        self.redis = redis

    async def _enqueue(self, function: str, *args, queue_name: str, defer_seconds: int = 0) -> None:
        try:
            job = await self.redis.enqueue_job(
                function,
                *args,
                _queue_name=queue_name,
                _defer_by=defer_seconds or None,
            )
        except Exception as e:
            raise QueueError(f"Failed to enqueue {function}{args}: {e}") from e
        if job is None:
            # ARQ returns None when a job with the same id already exists
            logger.debug("Job %s%s already queued", function, args)

    async def enqueue_fetch(self, source_id: int) -> None:
        await self._enqueue("fetch_source_job", source_id, queue_name=FETCH_QUEUE_NAME)

    async def enqueue_processing(self, item_id: int, defer_seconds: int = 0) -> None:
        await self._enqueue(
            "process_item_job", item_id, queue_name=PROCESSING_QUEUE_NAME, defer_seconds=defer_seconds
        )

    async def enqueue_brief(self, brief_id: int) -> None:
        await self._enqueue("execute_brief_job", brief_id, queue_name=DEFAULT_QUEUE_NAME)

    async def enqueue_email(self, event: dict) -> None:
        await self._enqueue("ingest_email_job", event, queue_name=DEFAULT_QUEUE_NAME)


def redis_settings() -> RedisSettings:
    return RedisSettings.from_dsn(get_settings().redis_url)


async def create_job_queue() -> ArqJobQueue:
    """Open a Redis pool for processes that enqueue but do not consume (API, CLI)."""
    return ArqJobQueue(await create_pool(redis_settings(), default_queue_name=DEFAULT_QUEUE_NAME))
