"""
Digestion API Request/Response Models

Pydantic models for the job submission and progress query endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from digestion.enums import ContentType, JobPriority, JobStatus
from digestion.models.base import StrictRequest, StrictResponse


class JobSubmissionRequest(StrictRequest):
    """Request body for submitting a capture for digestion."""

    capture_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    content_type: ContentType = ContentType.TEXT
    priority: JobPriority = JobPriority.NORMAL


class JobSubmissionResponse(StrictResponse):
    """Response for an accepted submission."""

    capture_id: str
    status: str = "queued"
    queue_position: int
    estimated_wait_ms: int


class JobProgressResponse(StrictResponse):
    """Progress of a single job as seen by clients."""

    capture_id: str
    user_id: str
    status: JobStatus
    percentage: int
    started_at: datetime
    last_updated_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class UserActiveJobsResponse(StrictResponse):
    """Active jobs for one user."""

    user_id: str
    jobs: list[JobProgressResponse]


class DeadLetterResponse(StrictResponse):
    """Dead-lettered jobs awaiting operational inspection."""

    total: int
    jobs: list[dict]
