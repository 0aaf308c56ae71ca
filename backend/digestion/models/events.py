"""
Domain Event Models

Immutable records emitted on the event bus. None of them are persisted; they
live only for the duration of the publish call and whatever handlers do with
them.

Failure events only ever carry a category-level message. Raw provider error
text stays in the logs.
"""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from digestion.enums import Confidence, FailureCategory, ProgressPhase
from digestion.models.jobs import CamelModel, utc_now


class _Event(CamelModel):
    model_config = ConfigDict(frozen=True)


class ProgressUpdate(_Event):
    """Progress notification for a capture being digested."""

    capture_id: str
    user_id: str
    phase: ProgressPhase
    elapsed_ms: int = 0
    queue_position: Optional[int] = None
    estimated_remaining_ms: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)


class TimeoutWarning(_Event):
    """Emitted once per job when processing runs past the warning threshold."""

    capture_id: str
    user_id: str
    elapsed_ms: int
    threshold_ms: int
    timestamp: datetime = Field(default_factory=utc_now)


class DigestionCompleted(_Event):
    """Published after the digestion result has been committed."""

    thought_id: str
    capture_id: str
    user_id: str
    summary: str
    ideas_count: int
    todos_count: int
    confidence: Confidence
    was_chunked: bool = False
    chunk_count: Optional[int] = None
    processing_time_ms: int
    completed_at: datetime = Field(default_factory=utc_now)


class DigestionFailed(_Event):
    """Published when a job fails permanently (dead-lettered or terminal)."""

    capture_id: str
    user_id: str
    category: FailureCategory
    message: str
    attempts: int
    failed_at: datetime = Field(default_factory=utc_now)


class QueueMetrics(_Event):
    """Point-in-time snapshot of queue health."""

    jobs_processed: int
    jobs_failed: int
    avg_latency_ms: int
    current_queue_depth: int
    timestamp: datetime = Field(default_factory=utc_now)
