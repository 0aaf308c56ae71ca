"""
Digestion Worker

Asyncio consumer for a JobQueue. Polls dequeue(), which only hands out a job
while the queue's prefetch limit allows, and runs each job as its own task.
Acknowledgement follows the processor's result:

    success                  -> ack
    JobCancelledError        -> ack (consumed, not dead-lettered)
    retryable DigestionError -> nack (backoff, then requeue)
    terminal DigestionError  -> nack without requeue (dead letter)

Shutdown stops polling, rejects new jobs and waits for the active ones.
Jobs still running when the shutdown timeout expires are logged and
cancelled without an ack; a durable queue keeps them in its in-flight set.

Usage:
    worker = DigestionWorker(queue, processor)
    await worker.start()
    ...
    await worker.stop()
"""

import asyncio
import logging
import time
from typing import Optional

from digestion.models.jobs import DigestionJob
from digestion.services.digestion.errors import DigestionError, JobCancelledError
from digestion.services.jobs.queue import JobQueue
from digestion.services.processor import DigestionProcessor

logger = logging.getLogger(__name__)


class DigestionWorker:
    """
    Polling worker.

    Args:
        queue: Queue to consume
        processor: Executes each job
        poll_interval: Seconds to sleep when nothing could be dequeued
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: DigestionProcessor,
        poll_interval: float = 0.5,
    ):
        self.queue = queue
        self.processor = processor
        self.poll_interval = poll_interval
        self._active: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._shutting_down = False

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def active_jobs(self) -> int:
        return len(self._active)

    async def start(self) -> None:
        if self.running:
            return
        self._shutting_down = False
        self._loop_task = asyncio.create_task(self._run())
        logger.info(f"Digestion worker started (prefetch={self.queue.prefetch})")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for active jobs to finish."""
        logger.info("Shutting down worker, waiting for active jobs...")
        self._shutting_down = True

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._active:
            logger.info(f"Waiting for {len(self._active)} active jobs to finish...")
            _, pending = await asyncio.wait(set(self._active), timeout=timeout)
            if pending:
                await self._abandon(pending)

        logger.info("Worker shutdown complete")

    async def _abandon(self, tasks: set[asyncio.Task]) -> None:
        """Cancel jobs still running after the shutdown timeout."""
        capture_ids = sorted(task.get_name() for task in tasks)
        logger.warning(
            f"Shutdown timeout reached, cancelling {len(tasks)} unfinished "
            f"jobs: {capture_ids}"
        )
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self) -> None:
        while not self._shutting_down:
            if not await self.poll_once():
                await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> bool:
        """
        Dequeue at most one job and start it.

        Returns:
            True if a job was started
        """
        if self._shutting_down:
            return False

        try:
            job = await self.queue.dequeue()
        except DigestionError as e:
            logger.warning(f"Dequeue failed ({e.error_code}), backing off")
            return False

        if job is None:
            return False

        task = asyncio.create_task(self.handle(job), name=job.capture_id)
        self._active.add(task)
        task.add_done_callback(self._active.discard)
        return True

    async def handle(self, job: DigestionJob) -> None:
        """Run a dequeued job and acknowledge it according to its outcome."""
        started = time.monotonic()
        try:
            await self.processor.process(job)

        except JobCancelledError:
            await self.queue.ack(job)

        except DigestionError as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            decision = await self.queue.nack(job, requeue=e.retryable)
            await self.processor.handle_failure(
                job, e, permanent=decision.dead_lettered, latency_ms=latency_ms
            )

        else:
            await self.queue.ack(job)
