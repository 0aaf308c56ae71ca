"""
Job and Progress Models (Pydantic)

Wire and record shapes for scheduled digestion jobs and their progress.
Both serialize with camelCase keys (captureId, retryCount, ...) because they
cross process boundaries: the job payload goes through the broker or Redis,
and progress records are stored in Redis and read by the client relay.

Models:
- DigestionJob: A queued unit of work for one capture
- JobProgress: Lifecycle record for an in-flight or recently finished job

Usage:
    from digestion.models.jobs import DigestionJob

    job = DigestionJob(capture_id="cap-1", user_id="user-1")
    payload = job.to_payload()
    same_job = DigestionJob.from_payload(payload)
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from digestion.enums import ContentType, JobPriority, JobStatus


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DigestionJob(CamelModel):
    """
    A digestion job for one capture.

    At most one job per capture is active (queued, in flight or awaiting a
    retry) at any time; the job queues enforce this.

    Attributes:
        capture_id: Capture to digest
        user_id: Owner of the capture
        content_type: text or audio_transcribed
        priority: high (interactive) or normal (background)
        queued_at: When the job was first submitted
        retry_count: Number of failed attempts so far (0-3)
    """

    capture_id: str
    user_id: str
    content_type: ContentType = ContentType.TEXT
    priority: JobPriority = JobPriority.NORMAL
    queued_at: datetime = Field(default_factory=utc_now)
    retry_count: int = Field(default=0, ge=0)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON-safe wire payload."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DigestionJob":
        """Parse a wire payload."""
        return cls.model_validate(payload)


class JobProgress(CamelModel):
    """
    Progress record for a tracked job.

    Created when a worker starts a job, mutated only by that worker, and
    removed after a retention window once terminal.
    """

    capture_id: str
    user_id: str
    status: JobStatus = JobStatus.DIGESTING
    percentage: int = Field(default=0, ge=0, le=100)
    started_at: datetime
    last_updated_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.DIGESTING

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "JobProgress":
        return cls.model_validate_json(data)
