"""
Redis Progress Store

Stores progress records in Redis so every API and worker process sees the
same state and records survive restarts.

Key layout:
    {prefix}:{capture_id}   JSON record; 10 min TTL while digesting,
                            5 min once terminal (updates keep the TTL)
    user:{user_id}:active   SET of the user's digesting capture IDs
    {prefix}_active         SET of all digesting capture IDs
    {prefix}_notify:{kind}:{capture_id}
                            marker of the last notification of that kind,
                            set with NX so one process sends it

Expiry does the cleanup; the active sets are pruned lazily whenever an
entry turns out to be terminal or expired.

Usage:
    from digestion.services.progress.redis_store import RedisProgressStore

    store = RedisProgressStore()
    await store.start_tracking("cap-1", "user-1")
"""

import logging
from typing import Optional

import redis.asyncio as redis

from digestion.db.redis import get_redis
from digestion.enums import JobStatus
from digestion.models.jobs import JobProgress
from digestion.services.progress.base import (
    STILL_PROCESSING_CLAIM,
    TIMEOUT_WARNING_CLAIM,
    ProgressStore,
    clamp_percentage,
    mark_completed,
    mark_failed,
)

logger = logging.getLogger(__name__)

NOTIFY_KINDS = (STILL_PROCESSING_CLAIM, TIMEOUT_WARNING_CLAIM)


class RedisProgressStore(ProgressStore):
    """
    Redis-backed progress store.

    Args:
        client: Redis client; defaults to the shared connection pool
        key_prefix: Prefix for record keys
        active_ttl_seconds: TTL for digesting records
        retention_seconds: TTL for terminal records
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        key_prefix: str = "progress",
        active_ttl_seconds: int = 600,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._client = client
        self.key_prefix = key_prefix
        self.active_ttl_seconds = active_ttl_seconds
        self.active_key = f"{key_prefix}_active"

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    def _key(self, capture_id: str) -> str:
        return f"{self.key_prefix}:{capture_id}"

    def _notify_key(self, kind: str, capture_id: str) -> str:
        return f"{self.key_prefix}_notify:{kind}:{capture_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}:active"

    async def _load(self, r: redis.Redis, capture_id: str) -> Optional[JobProgress]:
        data = await r.get(self._key(capture_id))
        if data is None:
            return None
        return JobProgress.from_json(data)

    async def _finish(self, r: redis.Redis, progress: JobProgress) -> None:
        await r.set(
            self._key(progress.capture_id),
            progress.to_json(),
            ex=self.retention_seconds,
        )
        await r.srem(self._user_key(progress.user_id), progress.capture_id)
        await r.srem(self.active_key, progress.capture_id)
        await r.delete(
            *(self._notify_key(kind, progress.capture_id) for kind in NOTIFY_KINDS)
        )

    async def claim_notification(
        self, capture_id: str, kind: str, ttl_ms: int
    ) -> bool:
        r = await self._redis()
        claimed = await r.set(
            self._notify_key(kind, capture_id), "1", nx=True, px=max(1, ttl_ms)
        )
        return bool(claimed)

    async def start_tracking(self, capture_id: str, user_id: str) -> JobProgress:
        r = await self._redis()
        now = self.clock()
        progress = JobProgress(
            capture_id=capture_id,
            user_id=user_id,
            status=JobStatus.DIGESTING,
            percentage=0,
            started_at=now,
            last_updated_at=now,
        )
        await r.set(
            self._key(capture_id), progress.to_json(), ex=self.active_ttl_seconds
        )
        await r.sadd(self._user_key(user_id), capture_id)
        await r.sadd(self.active_key, capture_id)
        logger.debug(f"Started tracking {capture_id} (Redis)")
        return progress

    async def update_progress(
        self, capture_id: str, percentage: float
    ) -> Optional[JobProgress]:
        r = await self._redis()
        progress = await self._load(r, capture_id)
        if progress is None:
            logger.warning(f"Cannot update progress: {capture_id} not found in Redis")
            return None
        if progress.is_terminal:
            logger.warning(
                f"Ignoring progress update for finished job {capture_id} "
                f"({progress.status.value})"
            )
            return None

        progress = progress.model_copy(
            update={
                "percentage": clamp_percentage(percentage),
                "last_updated_at": self.clock(),
            }
        )
        await r.set(self._key(capture_id), progress.to_json(), keepttl=True)
        return progress

    async def complete_tracking(self, capture_id: str) -> Optional[JobProgress]:
        r = await self._redis()
        progress = await self._load(r, capture_id)
        if progress is None:
            logger.warning(
                f"Cannot complete tracking: {capture_id} not found in Redis"
            )
            return None

        progress = mark_completed(progress, self.clock())
        await self._finish(r, progress)
        logger.info(f"Completed {capture_id} in {progress.duration_ms}ms")
        return progress

    async def fail_tracking(
        self, capture_id: str, error: str
    ) -> Optional[JobProgress]:
        r = await self._redis()
        progress = await self._load(r, capture_id)
        if progress is None:
            logger.warning(f"Cannot fail tracking: {capture_id} not found in Redis")
            return None

        progress = mark_failed(progress, error, self.clock())
        await self._finish(r, progress)
        logger.info(f"Failed {capture_id} after {progress.duration_ms}ms: {error}")
        return progress

    async def get_progress(self, capture_id: str) -> Optional[JobProgress]:
        r = await self._redis()
        return await self._load(r, capture_id)

    async def _active_members(self, set_key: str) -> list[JobProgress]:
        r = await self._redis()
        active: list[JobProgress] = []
        for capture_id in await r.smembers(set_key):
            progress = await self._load(r, capture_id)
            if progress is not None and progress.status == JobStatus.DIGESTING:
                active.append(progress)
            else:
                # Terminal or expired: prune the stale entry
                await r.srem(set_key, capture_id)
        return active

    async def get_user_active_jobs(self, user_id: str) -> list[JobProgress]:
        return await self._active_members(self._user_key(user_id))

    async def get_all_active_jobs(self) -> list[JobProgress]:
        return await self._active_members(self.active_key)

    async def cleanup(self, retention_seconds: Optional[int] = None) -> int:
        # Terminal records expire on their own; only the index needs pruning
        before = await (await self._redis()).scard(self.active_key)
        remaining = len(await self.get_all_active_jobs())
        removed = max(0, before - remaining)
        logger.debug(f"Redis progress cleanup pruned {removed} stale index entries")
        return removed

    async def get_stats(self) -> dict[str, int]:
        r = await self._redis()
        stats = {"total": 0, "active": 0, "completed": 0, "failed": 0}
        async for key in r.scan_iter(match=f"{self.key_prefix}:*"):
            data = await r.get(key)
            if data is None:
                continue
            progress = JobProgress.from_json(data)
            stats["total"] += 1
            if progress.status == JobStatus.DIGESTING:
                stats["active"] += 1
            elif progress.status == JobStatus.COMPLETED:
                stats["completed"] += 1
            else:
                stats["failed"] += 1
        return stats
