"""
Celery Task Definitions

Digestion on Celery workers (DIGESTION_DISPATCH_MODE=celery):
- digest_capture: runs one digestion job through the DigestionProcessor
- publish_digestion_job: producer side, maps job priority to broker priority

Retry Strategy:
    The same backoff table as the local queue (5s, 15s, 45s). A retryable
    failure calls self.retry() with the table's delay for the current retry
    count; the broker priority of the original message is kept. Terminal
    failures, and retryable ones once the table is exhausted, are rejected
    without requeue so the broker dead-letters them into digestion-failed.
    A cancelled job is acknowledged normally.

Event Loop:
    Each task runs its coroutine with asyncio.run(). Redis and database
    connections are created for that loop and closed when the task ends.

Usage:
    from digestion.services.tasks import publish_digestion_job

    publish_digestion_job(DigestionJob(capture_id="cap-1", user_id="user-1"))
"""

# =============================================================================
# Standard library imports
# =============================================================================
import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

# =============================================================================
# Third-party imports
# =============================================================================
import redis.asyncio as redis
from celery.exceptions import Reject
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# =============================================================================
# Internal imports
# =============================================================================
from digestion.config import digestion_settings, settings
from digestion.db.base import create_task_engine
from digestion.dependencies import build_processor, create_store
from digestion.enums import JobPriority
from digestion.models.jobs import DigestionJob
from digestion.services.digestion.errors import DigestionError, JobCancelledError
from digestion.services.events import EventBus
from digestion.services.jobs.backoff import BackoffPolicy
from digestion.services.notifications import ProgressNotificationService
from digestion.services.processor import DigestionProcessor
from digestion.services.queue import celery_app

logger = logging.getLogger(__name__)

backoff = BackoffPolicy(digestion_settings.RETRY_BACKOFF_MS)

# Events raised by tasks in this worker process; subscribe here to relay them
event_bus = EventBus()


def broker_priority(priority: JobPriority) -> int:
    if priority == JobPriority.HIGH:
        return digestion_settings.BROKER_PRIORITY_HIGH
    return digestion_settings.BROKER_PRIORITY_NORMAL


def is_permanent(job: DigestionJob, error: DigestionError) -> bool:
    """Whether a failed attempt goes to the dead-letter queue."""
    return not error.retryable or backoff.delay_for(job.retry_count) is None


@asynccontextmanager
async def _task_processor() -> AsyncIterator[DigestionProcessor]:
    """Processor with connections bound to the current event loop."""
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    engine = create_task_engine()
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    try:
        store = create_store(digestion_settings, redis_client)
        notifier = ProgressNotificationService(store, event_bus, digestion_settings)
        yield build_processor(notifier, event_bus, session_maker=session_maker)
    finally:
        await redis_client.aclose()
        await engine.dispose()


async def _digest_capture_impl(job: DigestionJob) -> dict[str, Any]:
    async with _task_processor() as processor:
        started = time.monotonic()
        try:
            thought_id = await processor.process(job)
        except JobCancelledError:
            raise
        except DigestionError as e:
            await processor.handle_failure(
                job,
                e,
                permanent=is_permanent(job, e),
                latency_ms=int((time.monotonic() - started) * 1000),
            )
            raise

    return {
        "status": "completed",
        "capture_id": job.capture_id,
        "thought_id": thought_id,
    }


@celery_app.task(
    bind=True,
    name="digestion.services.tasks.digest_capture",
    max_retries=backoff.max_retries,
)
def digest_capture(self, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Digest one capture.

    Args:
        payload: DigestionJob wire payload (camelCase keys)

    Returns:
        Dictionary with the job status and, on success, the thought ID
    """
    job = DigestionJob.from_payload(payload).model_copy(
        update={"retry_count": self.request.retries}
    )

    try:
        return asyncio.run(_digest_capture_impl(job))

    except JobCancelledError:
        logger.info(f"Digestion of {job.capture_id} cancelled")
        return {"status": "cancelled", "capture_id": job.capture_id}

    except DigestionError as e:
        if is_permanent(job, e):
            raise Reject(f"{e.error_code}: {e.message}", requeue=False)

        delay_ms = backoff.delay_for(job.retry_count)
        raise self.retry(exc=e, countdown=delay_ms / 1000)


def publish_digestion_job(job: DigestionJob) -> str:
    """
    Publish a job to the broker.

    Returns:
        Celery task ID
    """
    result = digest_capture.apply_async(
        args=[job.to_payload()],
        priority=broker_priority(job.priority),
    )
    logger.info(
        f"Published {job.capture_id} to {digestion_settings.BROKER_QUEUE} "
        f"(priority={job.priority.value}, task={result.id})"
    )
    return result.id
