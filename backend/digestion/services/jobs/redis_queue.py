"""
Redis-backed Digestion Job Queue

Durable variant of the job queue, shared by every worker process that points
at the same Redis and key prefix.

Key layout ({prefix} defaults to "digestion:queue"):
    {prefix}:pending   ZSET  capture_id scored by rank * 10^15 + sequence,
                             so ZPOPMIN yields strict priority then FIFO
    {prefix}:seq       STRING monotonically increasing sequence (INCR)
    {prefix}:jobs      HASH  capture_id -> payload for queued and delayed jobs
    {prefix}:delayed   ZSET  capture_id scored by the epoch ms it is due
    {prefix}:inflight  HASH  capture_id -> payload while a worker holds it
    {prefix}:dead      LIST  dead-lettered payloads, oldest first

Prefetch is enforced per consumer: each RedisJobQueue instance counts the
jobs it has handed out and not yet acked or nacked.

Enqueue, dequeue and retry promotion touch several keys; each runs as one
Lua script so a connection error never leaves a job half moved, and a retried
enqueue whose first reply was lost is recognized by its identical payload.

Connection errors are retried briefly with tenacity and then surface as
TransientInfraError so the caller can treat them like any other transient
infrastructure failure.

Usage:
    from digestion.services.jobs.redis_queue import RedisJobQueue

    queue = RedisJobQueue(prefetch=3)
    await queue.enqueue(job)
"""

import json
import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from digestion.db.redis import get_redis
from digestion.enums import JobPriority
from digestion.models.jobs import DigestionJob
from digestion.services.digestion.errors import TransientInfraError
from digestion.services.jobs.backoff import BackoffPolicy, NackResult
from digestion.services.jobs.errors import DuplicateJobError
from digestion.services.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

RANK_WEIGHT = 10**15
REDIS_ERRORS = (RedisConnectionError, RedisTimeoutError)

# Enqueue script results other than the pending depth before the insert
DUPLICATE = -1
ALREADY_STORED = -2

# Duplicate check, payload write and pending insert in one step. A replay of
# the same payload (a retried call whose reply was lost) is not a duplicate.
ENQUEUE_SCRIPT = """
if redis.call("HEXISTS", KEYS[1], ARGV[1]) == 1 then
    return -1
end
local stored = redis.call("HGET", KEYS[2], ARGV[1])
if stored then
    if stored == ARGV[2] then
        return -2
    end
    return -1
end
local depth = redis.call("ZCARD", KEYS[3])
redis.call("HSET", KEYS[2], ARGV[1], ARGV[2])
redis.call("ZADD", KEYS[3], ARGV[3], ARGV[1])
return depth
"""

# Pop the head job and move its payload to the in-flight hash
DEQUEUE_SCRIPT = """
local popped = redis.call("ZPOPMIN", KEYS[1])
if #popped == 0 then
    return nil
end
local capture_id = popped[1]
local payload = redis.call("HGET", KEYS[2], capture_id)
if not payload then
    return {capture_id}
end
redis.call("HSET", KEYS[3], capture_id, payload)
redis.call("HDEL", KEYS[2], capture_id)
return {capture_id, payload}
"""

# Move a due retry from the delayed set to the pending set
PROMOTE_SCRIPT = """
if redis.call("ZREM", KEYS[1], ARGV[1]) == 0 then
    return 0
end
redis.call("ZADD", KEYS[2], ARGV[2], ARGV[1])
return 1
"""


def epoch_ms() -> float:
    return time.time() * 1000


def with_redis_retry(func):
    """Retry Redis connection errors, then raise TransientInfraError."""
    retrying = retry(
        retry=retry_if_exception_type(REDIS_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(func)

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await retrying(*args, **kwargs)
        except REDIS_ERRORS as e:
            logger.error(f"Redis unavailable in {func.__name__}: {e}")
            raise TransientInfraError("Job queue storage unavailable") from e

    return wrapper


class RedisJobQueue(JobQueue):
    """
    Job queue stored in Redis.

    Args:
        client: Redis client; defaults to the shared connection pool
        prefix: Key prefix for all queue keys
        clock: Epoch milliseconds, used for retry due times
    """

    def __init__(
        self,
        prefetch: int = 3,
        backoff: Optional[BackoffPolicy] = None,
        overload_threshold: int = 100,
        client: Optional[redis.Redis] = None,
        prefix: str = "digestion:queue",
        clock: Callable[[], float] = epoch_ms,
    ):
        super().__init__(prefetch, backoff, overload_threshold)
        self._client = client
        self._clock = clock
        self._local_in_flight: set[str] = set()
        self._scripts: dict[str, Any] = {}

        self.pending_key = f"{prefix}:pending"
        self.seq_key = f"{prefix}:seq"
        self.jobs_key = f"{prefix}:jobs"
        self.delayed_key = f"{prefix}:delayed"
        self.inflight_key = f"{prefix}:inflight"
        self.dead_key = f"{prefix}:dead"

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def _run_script(
        self, r: redis.Redis, source: str, keys: list[str], args: list
    ) -> Any:
        script = self._scripts.get(source)
        if script is None:
            script = self._scripts[source] = r.register_script(source)
        return await script(keys=keys, args=args)

    async def _score(self, r: redis.Redis, priority: JobPriority) -> int:
        # A sequence number burnt by a retried call only leaves a gap
        sequence = await r.incr(self.seq_key)
        return priority.rank * RANK_WEIGHT + sequence

    @staticmethod
    def _dump(job: DigestionJob) -> str:
        return json.dumps(job.to_payload())

    @staticmethod
    def _load(payload: str) -> DigestionJob:
        return DigestionJob.from_payload(json.loads(payload))

    @with_redis_retry
    async def enqueue(
        self, job: DigestionJob, priority: Optional[JobPriority] = None
    ) -> int:
        if priority is not None:
            job = job.model_copy(update={"priority": priority})

        r = await self._redis()
        score = await self._score(r, job.priority)
        depth_before = await self._run_script(
            r,
            ENQUEUE_SCRIPT,
            keys=[self.inflight_key, self.jobs_key, self.pending_key],
            args=[job.capture_id, self._dump(job), str(score)],
        )
        if depth_before == DUPLICATE:
            raise DuplicateJobError(
                f"Capture {job.capture_id} already has an active digestion job"
            )

        if depth_before == ALREADY_STORED:
            logger.debug(f"{job.capture_id} was stored by an earlier attempt")
        else:
            logger.info(
                f"Enqueued {job.capture_id} "
                f"(priority={job.priority.value}, depth={depth_before + 1})"
            )
            await self._check_overload(depth_before, depth_before + 1)

        rank = await r.zrank(self.pending_key, job.capture_id)
        return (rank or 0) + 1

    async def _promote_due_retries(self, r: redis.Redis) -> None:
        due = await r.zrangebyscore(self.delayed_key, "-inf", self._clock())
        for capture_id in due:
            payload = await r.hget(self.jobs_key, capture_id)
            if payload is None:
                # Already promoted and dequeued by another consumer
                continue
            score = await self._score(r, self._load(payload).priority)
            # Only the consumer whose ZREM succeeds inside the script promotes
            if await self._run_script(
                r,
                PROMOTE_SCRIPT,
                keys=[self.delayed_key, self.pending_key],
                args=[capture_id, str(score)],
            ):
                logger.debug(f"Retry for {capture_id} is due, requeued")

    @with_redis_retry
    async def dequeue(self) -> Optional[DigestionJob]:
        r = await self._redis()
        await self._promote_due_retries(r)

        if len(self._local_in_flight) >= self.prefetch:
            return None

        popped = await self._run_script(
            r,
            DEQUEUE_SCRIPT,
            keys=[self.pending_key, self.jobs_key, self.inflight_key],
            args=[],
        )
        if not popped:
            return None

        if len(popped) < 2:
            logger.warning(f"Queued job {popped[0]} has no payload, skipping")
            return None

        job = self._load(popped[1])
        self._local_in_flight.add(job.capture_id)
        return job

    @with_redis_retry
    async def ack(self, job: DigestionJob) -> None:
        r = await self._redis()
        self._local_in_flight.discard(job.capture_id)
        if not await r.hdel(self.inflight_key, job.capture_id):
            logger.warning(f"Ack for {job.capture_id} which is not in flight")

    @with_redis_retry
    async def nack(self, job: DigestionJob, requeue: bool = True) -> NackResult:
        r = await self._redis()
        self._local_in_flight.discard(job.capture_id)
        await r.hdel(self.inflight_key, job.capture_id)

        delay_ms = self.backoff.delay_for(job.retry_count) if requeue else None
        if delay_ms is None:
            await r.rpush(self.dead_key, self._dump(job))
            logger.error(
                f"Dead-lettered {job.capture_id} after {job.retry_count + 1} attempt(s)"
            )
            return NackResult(
                capture_id=job.capture_id,
                retry_scheduled=False,
                dead_lettered=True,
                retry_count=job.retry_count,
            )

        retry_job = job.model_copy(update={"retry_count": job.retry_count + 1})
        await r.hset(self.jobs_key, job.capture_id, self._dump(retry_job))
        await r.zadd(self.delayed_key, {job.capture_id: self._clock() + delay_ms})
        logger.warning(
            f"Retry {retry_job.retry_count}/{self.backoff.max_retries} for "
            f"{job.capture_id} scheduled in {delay_ms}ms"
        )
        return NackResult(
            capture_id=job.capture_id,
            retry_scheduled=True,
            dead_lettered=False,
            delay_ms=delay_ms,
            retry_count=retry_job.retry_count,
        )

    @with_redis_retry
    async def depth(self) -> int:
        r = await self._redis()
        return await r.zcard(self.pending_key)

    async def in_flight_count(self) -> int:
        return len(self._local_in_flight)

    @with_redis_retry
    async def position(self, capture_id: str) -> Optional[int]:
        r = await self._redis()
        rank = await r.zrank(self.pending_key, capture_id)
        return None if rank is None else rank + 1

    @with_redis_retry
    async def contains(self, capture_id: str) -> bool:
        r = await self._redis()
        return bool(
            await r.hexists(self.jobs_key, capture_id)
            or await r.hexists(self.inflight_key, capture_id)
        )

    @with_redis_retry
    async def dead_letters(self) -> list[DigestionJob]:
        r = await self._redis()
        return [self._load(payload) for payload in await r.lrange(self.dead_key, 0, -1)]
