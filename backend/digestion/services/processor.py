"""
Digestion Processor

Runs one digestion job end to end and keeps progress, events and metrics in
step with it:

    start tracking -> 10% -> extract (20%) -> digest, chunk by chunk
    (40% to 70%) -> persist atomically (90%) -> publish digestion.completed
    -> complete tracking (100%)

The processor does not decide about retries. It raises a DigestionError and
the caller (the asyncio worker or the Celery task) asks its queue what to do,
then reports a permanent failure back through handle_failure().

Cancellation is cooperative: cancel() marks the job failed and raises a flag
that is checked between steps and between chunks. A provider call already in
progress is allowed to finish, but nothing is persisted afterwards.

Usage:
    processor = DigestionProcessor(extractor, chunker, persistence, notifier, bus)
    thought_id = await processor.process(job)
"""

import asyncio
import logging
import time
from typing import Optional

from digestion.enums import EventTopic, FailureCategory, JobStatus
from digestion.models.events import DigestionCompleted, DigestionFailed
from digestion.models.jobs import DigestionJob
from digestion.services.digestion.chunker import ContentChunker
from digestion.services.digestion.errors import (
    DigestionError,
    JobCancelledError,
    TransientInfraError,
    user_message,
)
from digestion.services.events import EventBus
from digestion.services.extractor import ContentExtractor
from digestion.services.jobs.queue import JobQueue
from digestion.services.monitoring import QueueMonitor
from digestion.services.notifications import ProgressNotificationService
from digestion.services.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

# Progress checkpoints (percent)
PROGRESS_STARTED = 10
PROGRESS_EXTRACTED = 20
PROGRESS_DIGEST_START = 40
PROGRESS_DIGEST_END = 70
PROGRESS_PERSISTED = 90


class DigestionProcessor:
    """
    Executes digestion jobs.

    Args:
        extractor: Source of capture content
        chunker: Chunking digestion driver
        persistence: Atomic result storage
        notifier: Progress tracking with notifications
        bus: Event bus for completion and failure events
        monitor: Optional metrics recorder
        queue: Local job queue, used to accept cancellation of queued jobs
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        chunker: ContentChunker,
        persistence: PersistenceGateway,
        notifier: ProgressNotificationService,
        bus: EventBus,
        monitor: Optional[QueueMonitor] = None,
        queue: Optional[JobQueue] = None,
    ):
        self.extractor = extractor
        self.chunker = chunker
        self.persistence = persistence
        self.notifier = notifier
        self.bus = bus
        self.monitor = monitor
        self.queue = queue
        self._cancellations: dict[str, asyncio.Event] = {}

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def cancel(self, capture_id: str) -> bool:
        """
        Request cooperative cancellation of a job.

        An in-progress job is marked failed right away. A job that is still
        queued or waiting for a retry stops at its first checkpoint once a
        worker picks it up.

        Returns:
            False if the capture has no active or queued job
        """
        progress = await self.notifier.get_progress(capture_id)
        active = progress is not None and not progress.is_terminal
        queued = self.queue is not None and await self.queue.contains(capture_id)
        if not (active or queued):
            return False

        self._cancellations.setdefault(capture_id, asyncio.Event()).set()
        if active:
            await self.notifier.fail_tracking(
                capture_id, user_message(FailureCategory.CANCELLED)
            )
        logger.info(f"Cancellation requested for {capture_id}")
        return True

    def is_cancelled(self, capture_id: str) -> bool:
        event = self._cancellations.get(capture_id)
        return event is not None and event.is_set()

    async def _check_cancelled(self, job: DigestionJob) -> None:
        """
        Raise JobCancelledError if the job was cancelled.

        A cancel issued by another process (Celery mode) is only visible as a
        failed progress record in the shared store; it is copied into the
        local flag so the chunker's abort check sees it too.
        """
        if not self.is_cancelled(job.capture_id):
            progress = await self.notifier.get_progress(job.capture_id)
            if progress is None or progress.status != JobStatus.FAILED:
                return
            self._cancellations.setdefault(job.capture_id, asyncio.Event()).set()
        raise JobCancelledError(f"Digestion of {job.capture_id} was cancelled")

    async def _progress(self, job: DigestionJob, percentage: int) -> None:
        await self._check_cancelled(job)
        await self.notifier.update_progress(job.capture_id, percentage)

    # =========================================================================
    # Processing
    # =========================================================================

    async def process(
        self, job: DigestionJob, queue_position: Optional[int] = None
    ) -> str:
        """
        Digest one job and persist the result.

        Returns:
            ID of the stored thought

        Raises:
            DigestionError: Classified failure; unexpected exceptions are
                wrapped as TransientInfraError
        """
        started = time.monotonic()
        logger.info(
            f"Received job {job.capture_id} "
            f"(priority: {job.priority.value}, retry: {job.retry_count})"
        )

        try:
            if job.retry_count > 0:
                # Cancelled while waiting for this retry
                await self._check_cancelled(job)
            await self.notifier.start_tracking(
                job.capture_id, job.user_id, queue_position=queue_position
            )
            await self._progress(job, PROGRESS_STARTED)

            extracted = await self.extractor.extract(job.capture_id)
            await self._progress(job, PROGRESS_EXTRACTED)
            await self._progress(job, PROGRESS_DIGEST_START)

            async def on_chunk(done: int, total: int) -> None:
                span = PROGRESS_DIGEST_END - PROGRESS_DIGEST_START
                await self._progress(job, PROGRESS_DIGEST_START + span * done // total)

            result = await self.chunker.process(
                extracted.content,
                extracted.content_type,
                capture_id=job.capture_id,
                on_chunk=on_chunk,
                should_abort=lambda: self.is_cancelled(job.capture_id),
            )

            # Last checkpoint before anything is written
            await self._check_cancelled(job)
            thought_id = await self.persistence.save_digestion(job, result)
            await self.notifier.update_progress(job.capture_id, PROGRESS_PERSISTED)

            processing_ms = int((time.monotonic() - started) * 1000)
            await self.bus.publish(
                EventTopic.DIGESTION_COMPLETED,
                DigestionCompleted(
                    thought_id=thought_id,
                    capture_id=job.capture_id,
                    user_id=job.user_id,
                    summary=result.summary,
                    ideas_count=len(result.ideas),
                    todos_count=len(result.todos),
                    confidence=result.confidence,
                    was_chunked=result.was_chunked,
                    chunk_count=result.chunk_count,
                    processing_time_ms=processing_ms,
                ),
            )
            await self.notifier.complete_tracking(job.capture_id)

        except JobCancelledError:
            await self._finish_cancelled(job)
            raise
        except DigestionError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error digesting {job.capture_id}")
            raise TransientInfraError(f"Unexpected {type(e).__name__}") from e
        finally:
            self._cancellations.pop(job.capture_id, None)

        if self.monitor:
            self.monitor.record_job_processed(latency_ms=processing_ms)

        logger.info(
            f"Digestion complete for {job.capture_id}: thought {thought_id} "
            f"({len(result.ideas)} ideas, {processing_ms}ms, "
            f"confidence: {result.confidence.value})"
        )
        return thought_id

    async def _finish_cancelled(self, job: DigestionJob) -> None:
        progress = await self.notifier.get_progress(job.capture_id)
        if progress is not None and not progress.is_terminal:
            await self.notifier.fail_tracking(
                job.capture_id, user_message(FailureCategory.CANCELLED)
            )
        logger.info(f"Stopped cancelled job {job.capture_id}")

    async def handle_failure(
        self,
        job: DigestionJob,
        error: DigestionError,
        permanent: bool,
        latency_ms: Optional[int] = None,
    ) -> None:
        """
        Record a failed attempt.

        Retries are only logged. Permanent failures mark progress failed with
        the category-level message, publish digestion.failed and count a
        failed job.
        """
        attempts = job.retry_count + 1
        if not permanent:
            logger.warning(
                f"Attempt {attempts} for {job.capture_id} failed "
                f"({error.category.value}), will be retried"
            )
            return

        logger.error(
            f"Job permanently failed after {attempts} attempt(s): {job.capture_id} "
            f"({error.category.value}: {error.message})"
        )
        message = user_message(error.category)
        await self.notifier.fail_tracking(job.capture_id, message)
        await self.bus.publish(
            EventTopic.DIGESTION_FAILED,
            DigestionFailed(
                capture_id=job.capture_id,
                user_id=job.user_id,
                category=error.category,
                message=message,
                attempts=attempts,
            ),
        )
        if self.monitor:
            self.monitor.record_job_failed()
            if latency_ms is not None:
                self.monitor.record_job_latency(latency_ms)
