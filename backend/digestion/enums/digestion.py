"""
Digestion-related enums.

Defines enums for job scheduling, digestion output, progress tracking and
failure classification. Values are lowercase because they appear verbatim in
job payloads, progress records and events.
"""

from enum import Enum


class ContentType(str, Enum):
    """Kind of raw content a capture provides."""

    TEXT = "text"
    AUDIO_TRANSCRIBED = "audio_transcribed"


class JobPriority(str, Enum):
    """Scheduling tier. High is reserved for interactive captures."""

    HIGH = "high"
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        """Sort rank, lower dequeues first."""
        return 0 if self is JobPriority.HIGH else 1


class Confidence(str, Enum):
    """Provider confidence in a digestion result."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def level(self) -> int:
        """Ordinal where larger means less confident."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]

    @property
    def score(self) -> float:
        """Numeric score stored alongside a persisted thought."""
        return {"high": 0.9, "medium": 0.6, "low": 0.3}[self.value]


class TodoPriority(str, Enum):
    """Priority inferred for an extracted todo."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class JobStatus(str, Enum):
    """Lifecycle status of a tracked job."""

    DIGESTING = "digesting"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressPhase(str, Enum):
    """Phase reported in progress update events."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureCategory(str, Enum):
    """Category-level failure classification surfaced to users."""

    RATE_LIMITED = "rate_limited"
    VALIDATION_FAILED = "validation_failed"
    TIMED_OUT = "timed_out"
    TRANSIENT_INFRA = "transient_infra"
    EXTRACTION_FAILED = "extraction_failed"
    CANCELLED = "cancelled"


class EventTopic(str, Enum):
    """Event bus topics."""

    DIGESTION_COMPLETED = "digestion.completed"
    DIGESTION_FAILED = "digestion.failed"
    PROGRESS_UPDATE = "progress.update"
    PROGRESS_STILL_PROCESSING = "progress.still-processing"
    PROGRESS_TIMEOUT_WARNING = "progress.timeout-warning"
    QUEUE_OVERLOADED = "queue.overloaded"
