"""
Retry Backoff Policy

Maps a job's retry count to the delay before its next attempt. Once the
table is exhausted the job is dead-lettered instead.

    attempt 1 fails (retry_count=0) -> retry in  5s
    attempt 2 fails (retry_count=1) -> retry in 15s
    attempt 3 fails (retry_count=2) -> retry in 45s
    attempt 4 fails (retry_count=3) -> dead letter

Usage:
    from digestion.services.jobs.backoff import BackoffPolicy

    policy = BackoffPolicy([5000, 15000, 45000])
    policy.delay_for(0)   # 5000
    policy.delay_for(3)   # None
"""

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class NackResult:
    """
    What the queue decided for a negatively acknowledged job.

    Attributes:
        capture_id: The job's capture
        retry_scheduled: True if the job will be re-enqueued after delay_ms
        dead_lettered: True if the job went to the dead-letter queue
        delay_ms: Backoff before the retry becomes eligible
        retry_count: Retry count the job carries from now on
    """

    capture_id: str
    retry_scheduled: bool
    dead_lettered: bool
    delay_ms: Optional[int] = None
    retry_count: int = 0


class BackoffPolicy:
    """Fixed-table backoff; the table length is the retry limit."""

    def __init__(self, delays_ms: Sequence[int] = (5000, 15000, 45000)):
        if not delays_ms:
            raise ValueError("Backoff table must have at least one entry")
        self.delays_ms = list(delays_ms)

    @property
    def max_retries(self) -> int:
        return len(self.delays_ms)

    def delay_for(self, retry_count: int) -> Optional[int]:
        """Delay before retry number retry_count + 1, or None if exhausted."""
        if retry_count < 0 or retry_count >= self.max_retries:
            return None
        return self.delays_ms[retry_count]

    def should_retry(self, retry_count: int, requeue: bool = True) -> bool:
        return requeue and self.delay_for(retry_count) is not None
