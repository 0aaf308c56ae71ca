"""
Digestion Job Queue

Priority job queue with bounded concurrency, retry backoff and a dead-letter
queue. Two implementations share the JobQueue interface:

- InMemoryJobQueue: single-process queue, used by the local worker and tests
- RedisJobQueue: durable queue shared by several worker processes
  (see redis_queue.py)

Scheduling rules:
- High priority jobs always dequeue before normal ones; FIFO within a tier
- dequeue() only hands out a job while fewer than `prefetch` jobs are in
  flight. This is the only backpressure mechanism.
- nack() schedules a retry after the backoff delay, keeping the job's
  priority tier, or dead-letters it once retries are exhausted or the
  failure is not retryable
- A capture can have at most one active job (queued, in flight or waiting
  for a retry); a second enqueue raises DuplicateJobError

Usage:
    from digestion.services.jobs import InMemoryJobQueue

    queue = InMemoryJobQueue(prefetch=3)
    position = await queue.enqueue(job)
    job = await queue.dequeue()
    await queue.ack(job)
"""

import heapq
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from itertools import count
from typing import Any, Optional

from digestion.enums import JobPriority
from digestion.models.jobs import DigestionJob
from digestion.services.jobs.backoff import BackoffPolicy, NackResult
from digestion.services.jobs.errors import DuplicateJobError

logger = logging.getLogger(__name__)

# Called with the queue depth when the overload threshold is crossed
OverloadListener = Callable[[int], Any]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class JobQueue(ABC):
    """
    Interface shared by the job queue implementations.

    Args:
        prefetch: Max jobs in flight for this consumer
        backoff: Retry delay table
        overload_threshold: Depth above which the queue counts as overloaded
    """

    def __init__(
        self,
        prefetch: int = 3,
        backoff: Optional[BackoffPolicy] = None,
        overload_threshold: int = 100,
    ):
        if prefetch < 1:
            raise ValueError("prefetch must be at least 1")
        self.prefetch = prefetch
        self.backoff = backoff or BackoffPolicy()
        self.overload_threshold = overload_threshold
        self._overload_listeners: list[OverloadListener] = []

    @abstractmethod
    async def enqueue(
        self, job: DigestionJob, priority: Optional[JobPriority] = None
    ) -> int:
        """Add a job; returns its 1-based position among queued jobs."""

    @abstractmethod
    async def dequeue(self) -> Optional[DigestionJob]:
        """Next job to run, or None when empty or at the prefetch limit."""

    @abstractmethod
    async def ack(self, job: DigestionJob) -> None:
        """Mark an in-flight job done and free its slot."""

    @abstractmethod
    async def nack(self, job: DigestionJob, requeue: bool = True) -> NackResult:
        """Mark an in-flight job failed; retry it or dead-letter it."""

    @abstractmethod
    async def depth(self) -> int:
        """Number of queued jobs (not in flight, not waiting for a retry)."""

    @abstractmethod
    async def in_flight_count(self) -> int:
        """Number of jobs handed out and not yet acked or nacked."""

    @abstractmethod
    async def position(self, capture_id: str) -> Optional[int]:
        """1-based queue position of a queued job, None if not queued."""

    @abstractmethod
    async def contains(self, capture_id: str) -> bool:
        """Whether the capture has an active job."""

    @abstractmethod
    async def dead_letters(self) -> list[DigestionJob]:
        """Dead-lettered jobs, oldest first."""

    async def is_overloaded(self) -> bool:
        return await self.depth() > self.overload_threshold

    def add_overload_listener(self, listener: OverloadListener) -> None:
        """Register a callback (sync or async) fired when overload starts."""
        self._overload_listeners.append(listener)

    async def _check_overload(self, depth_before: int, depth_after: int) -> None:
        crossed = depth_before <= self.overload_threshold < depth_after
        if not crossed:
            return

        logger.warning(
            f"Queue overloaded: {depth_after} jobs (threshold: {self.overload_threshold})"
        )
        for listener in self._overload_listeners:
            result = listener(depth_after)
            if inspect.isawaitable(result):
                await result


class InMemoryJobQueue(JobQueue):
    """
    Single-process job queue.

    Queued jobs live in a heap ordered by (priority rank, sequence). Retries
    wait in a delayed list until their ready time, measured by `clock` in
    milliseconds, and are promoted on the next dequeue.
    """

    def __init__(
        self,
        prefetch: int = 3,
        backoff: Optional[BackoffPolicy] = None,
        overload_threshold: int = 100,
        clock: Callable[[], float] = monotonic_ms,
    ):
        super().__init__(prefetch, backoff, overload_threshold)
        self._clock = clock
        self._sequence = count()
        self._heap: list[tuple[int, int, str]] = []
        self._delayed: list[tuple[float, int, DigestionJob]] = []
        self._jobs: dict[str, DigestionJob] = {}
        self._in_flight: dict[str, DigestionJob] = {}
        self._dead: list[DigestionJob] = []

    def _push(self, job: DigestionJob) -> None:
        self._jobs[job.capture_id] = job
        heapq.heappush(
            self._heap, (job.priority.rank, next(self._sequence), job.capture_id)
        )

    def _promote_due_retries(self) -> None:
        now = self._clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job = heapq.heappop(self._delayed)
            self._push(job)
            logger.debug(f"Retry for {job.capture_id} is due, requeued")

    def _is_waiting_for_retry(self, capture_id: str) -> bool:
        return any(job.capture_id == capture_id for _, _, job in self._delayed)

    async def enqueue(
        self, job: DigestionJob, priority: Optional[JobPriority] = None
    ) -> int:
        if priority is not None:
            job = job.model_copy(update={"priority": priority})

        if await self.contains(job.capture_id):
            raise DuplicateJobError(
                f"Capture {job.capture_id} already has an active digestion job"
            )

        depth_before = len(self._heap)
        self._push(job)
        logger.info(
            f"Enqueued {job.capture_id} "
            f"(priority={job.priority.value}, depth={len(self._heap)})"
        )

        await self._check_overload(depth_before, len(self._heap))
        return await self.position(job.capture_id)

    async def dequeue(self) -> Optional[DigestionJob]:
        self._promote_due_retries()

        if len(self._in_flight) >= self.prefetch or not self._heap:
            return None

        _, _, capture_id = heapq.heappop(self._heap)
        job = self._jobs.pop(capture_id)
        self._in_flight[capture_id] = job
        return job

    async def ack(self, job: DigestionJob) -> None:
        if self._in_flight.pop(job.capture_id, None) is None:
            logger.warning(f"Ack for {job.capture_id} which is not in flight")

    async def nack(self, job: DigestionJob, requeue: bool = True) -> NackResult:
        if self._in_flight.pop(job.capture_id, None) is None:
            logger.warning(f"Nack for {job.capture_id} which is not in flight")

        delay_ms = self.backoff.delay_for(job.retry_count) if requeue else None
        if delay_ms is None:
            self._dead.append(job)
            logger.error(
                f"Dead-lettered {job.capture_id} after {job.retry_count + 1} attempt(s)"
            )
            return NackResult(
                capture_id=job.capture_id,
                retry_scheduled=False,
                dead_lettered=True,
                retry_count=job.retry_count,
            )

        retry = job.model_copy(update={"retry_count": job.retry_count + 1})
        heapq.heappush(
            self._delayed, (self._clock() + delay_ms, next(self._sequence), retry)
        )
        logger.warning(
            f"Retry {retry.retry_count}/{self.backoff.max_retries} for "
            f"{job.capture_id} scheduled in {delay_ms}ms"
        )
        return NackResult(
            capture_id=job.capture_id,
            retry_scheduled=True,
            dead_lettered=False,
            delay_ms=delay_ms,
            retry_count=retry.retry_count,
        )

    async def depth(self) -> int:
        return len(self._heap)

    async def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def position(self, capture_id: str) -> Optional[int]:
        if capture_id not in self._jobs:
            return None
        ordered = sorted(self._heap)
        for index, (_, _, queued_id) in enumerate(ordered, start=1):
            if queued_id == capture_id:
                return index
        return None

    async def contains(self, capture_id: str) -> bool:
        return (
            capture_id in self._jobs
            or capture_id in self._in_flight
            or self._is_waiting_for_retry(capture_id)
        )

    async def dead_letters(self) -> list[DigestionJob]:
        return list(self._dead)
