"""
Progress Store Interface

A progress record is created when a worker picks a job up, updated only by
that worker, and kept for a short retention window after it reaches a
terminal state so clients can still read the outcome.

Both implementations (in-process dict, Redis) expose the same async
interface; which one is used is decided when the service is composed.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from digestion.enums import JobStatus
from digestion.models.jobs import JobProgress, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Notification kinds claimed through ProgressStore.claim_notification()
STILL_PROCESSING_CLAIM = "still-processing"
TIMEOUT_WARNING_CLAIM = "timeout-warning"


def clamp_percentage(percentage: float) -> int:
    return int(max(0, min(100, percentage)))


def elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def mark_completed(progress: JobProgress, now: datetime) -> JobProgress:
    return progress.model_copy(
        update={
            "status": JobStatus.COMPLETED,
            "percentage": 100,
            "completed_at": now,
            "last_updated_at": now,
            "duration_ms": elapsed_ms(progress.started_at, now),
        }
    )


def mark_failed(progress: JobProgress, error: str, now: datetime) -> JobProgress:
    return progress.model_copy(
        update={
            "status": JobStatus.FAILED,
            "error": error,
            "completed_at": now,
            "last_updated_at": now,
            "duration_ms": elapsed_ms(progress.started_at, now),
        }
    )


class ProgressStore(ABC):
    """
    Async progress store.

    Args:
        retention_seconds: How long terminal records are kept
        clock: Source of the current UTC time
    """

    def __init__(self, retention_seconds: int = 300, clock: Clock = utc_now):
        self.retention_seconds = retention_seconds
        self.clock = clock

    async def claim_notification(
        self, capture_id: str, kind: str, ttl_ms: int
    ) -> bool:
        """
        Claim the right to send one `kind` notification for a job.

        A shared store grants a claim to one caller per `ttl_ms`; a
        process-local store always grants it.
        """
        return True

    @abstractmethod
    async def start_tracking(self, capture_id: str, user_id: str) -> JobProgress:
        """Create a digesting record at 0%."""

    @abstractmethod
    async def update_progress(
        self, capture_id: str, percentage: float
    ) -> Optional[JobProgress]:
        """Set the clamped percentage; unknown or finished jobs are ignored."""

    @abstractmethod
    async def complete_tracking(self, capture_id: str) -> Optional[JobProgress]:
        """Mark completed at 100% with duration."""

    @abstractmethod
    async def fail_tracking(
        self, capture_id: str, error: str
    ) -> Optional[JobProgress]:
        """Mark failed with a user-facing error message and duration."""

    @abstractmethod
    async def get_progress(self, capture_id: str) -> Optional[JobProgress]:
        """Current record, None if unknown or expired."""

    @abstractmethod
    async def get_user_active_jobs(self, user_id: str) -> list[JobProgress]:
        """Digesting records of one user."""

    @abstractmethod
    async def get_all_active_jobs(self) -> list[JobProgress]:
        """Every digesting record."""

    @abstractmethod
    async def cleanup(self, retention_seconds: Optional[int] = None) -> int:
        """Drop terminal records past retention; returns how many were removed."""

    @abstractmethod
    async def get_stats(self) -> dict[str, int]:
        """Counts by status: total, active, completed, failed."""
