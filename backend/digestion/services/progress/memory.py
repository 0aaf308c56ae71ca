"""
In-Memory Progress Store

Keeps progress records in a dict. Suitable for a single API/worker process
and for tests; records are lost on restart and not shared across processes.
Terminal records are removed by cleanup(), which the maintenance scheduler
runs periodically.
"""

import logging
from typing import Optional

from digestion.enums import JobStatus
from digestion.models.jobs import JobProgress
from digestion.services.progress.base import (
    ProgressStore,
    clamp_percentage,
    mark_completed,
    mark_failed,
)

logger = logging.getLogger(__name__)


class InMemoryProgressStore(ProgressStore):
    """Dict-backed progress store."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._progress: dict[str, JobProgress] = {}

    async def start_tracking(self, capture_id: str, user_id: str) -> JobProgress:
        now = self.clock()
        progress = JobProgress(
            capture_id=capture_id,
            user_id=user_id,
            status=JobStatus.DIGESTING,
            percentage=0,
            started_at=now,
            last_updated_at=now,
        )
        self._progress[capture_id] = progress
        logger.debug(f"Started tracking {capture_id} (user: {user_id})")
        return progress

    async def update_progress(
        self, capture_id: str, percentage: float
    ) -> Optional[JobProgress]:
        progress = self._progress.get(capture_id)
        if progress is None:
            logger.warning(f"Cannot update progress for unknown job: {capture_id}")
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
        self._progress[capture_id] = progress
        logger.debug(f"Progress {capture_id}: {progress.percentage}%")
        return progress

    async def complete_tracking(self, capture_id: str) -> Optional[JobProgress]:
        progress = self._progress.get(capture_id)
        if progress is None:
            logger.warning(f"Cannot complete tracking for unknown job: {capture_id}")
            return None

        progress = mark_completed(progress, self.clock())
        self._progress[capture_id] = progress
        logger.info(f"Completed {capture_id} in {progress.duration_ms}ms")
        return progress

    async def fail_tracking(
        self, capture_id: str, error: str
    ) -> Optional[JobProgress]:
        progress = self._progress.get(capture_id)
        if progress is None:
            logger.warning(f"Cannot fail tracking for unknown job: {capture_id}")
            return None

        progress = mark_failed(progress, error, self.clock())
        self._progress[capture_id] = progress
        logger.info(f"Failed {capture_id} after {progress.duration_ms}ms: {error}")
        return progress

    async def get_progress(self, capture_id: str) -> Optional[JobProgress]:
        return self._progress.get(capture_id)

    async def get_user_active_jobs(self, user_id: str) -> list[JobProgress]:
        return [
            p
            for p in self._progress.values()
            if p.user_id == user_id and p.status == JobStatus.DIGESTING
        ]

    async def get_all_active_jobs(self) -> list[JobProgress]:
        return [p for p in self._progress.values() if p.status == JobStatus.DIGESTING]

    async def cleanup(self, retention_seconds: Optional[int] = None) -> int:
        retention = (
            self.retention_seconds if retention_seconds is None else retention_seconds
        )
        now = self.clock()

        expired = [
            capture_id
            for capture_id, p in self._progress.items()
            if p.is_terminal
            and p.completed_at is not None
            and (now - p.completed_at).total_seconds() >= retention
        ]
        for capture_id in expired:
            del self._progress[capture_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} finished progress records")
        return len(expired)

    async def get_stats(self) -> dict[str, int]:
        records = list(self._progress.values())
        return {
            "total": len(records),
            "active": sum(1 for p in records if p.status == JobStatus.DIGESTING),
            "completed": sum(1 for p in records if p.status == JobStatus.COMPLETED),
            "failed": sum(1 for p in records if p.status == JobStatus.FAILED),
        }
