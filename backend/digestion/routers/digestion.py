"""
Digestion API Router

Job submission, progress queries and cancellation for capture digestion.

Endpoints:
- POST /api/digestion/jobs - Queue a capture for digestion
- GET /api/digestion/jobs/{capture_id} - Progress of one job
- GET /api/digestion/users/{user_id}/jobs - Active jobs of a user
- POST /api/digestion/jobs/{capture_id}/cancel - Cancel a job
- GET /api/digestion/dead-letters - Dead-lettered jobs

Usage:
    POST /api/digestion/jobs
    {"captureId": "cap-1", "userId": "user-1", "priority": "high"}

    GET /api/digestion/jobs/cap-1
"""

import logging

from fastapi import APIRouter, Depends, status

from digestion.dependencies import DigestionServices, get_digestion_services
from digestion.middleware.error_handling import NotFoundError
from digestion.models.base import SuccessResponse
from digestion.models.digestion_api import (
    DeadLetterResponse,
    JobProgressResponse,
    JobSubmissionRequest,
    JobSubmissionResponse,
    UserActiveJobsResponse,
)
from digestion.models.jobs import DigestionJob, JobProgress
from digestion.services.jobs.errors import QueueOverloadedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/digestion", tags=["digestion"])


def _to_response(progress: JobProgress) -> JobProgressResponse:
    return JobProgressResponse(**progress.model_dump())


@router.post(
    "/jobs",
    response_model=JobSubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_job(
    request: JobSubmissionRequest,
    services: DigestionServices = Depends(get_digestion_services),
) -> JobSubmissionResponse:
    """
    Queue a capture for digestion.

    Raises:
        QueueOverloadedError: 503 while the queue is past its overload threshold
        DuplicateJobError: 409 if the capture already has an active job
    """
    if await services.monitor.is_overloaded():
        raise QueueOverloadedError(
            "Digestion queue is overloaded, try again later",
            details={"threshold": services.queue.overload_threshold},
        )

    job = DigestionJob(
        capture_id=request.capture_id,
        user_id=request.user_id,
        content_type=request.content_type,
        priority=request.priority,
    )

    if services.uses_broker:
        # Deferred import: loading Celery is only needed in broker mode
        from digestion.services.tasks import publish_digestion_job

        publish_digestion_job(job)
        position = 1
    else:
        position = await services.queue.enqueue(job)

    await services.notifier.notify_queued(job.capture_id, job.user_id, position)

    depth = await services.monitor.get_queue_depth()
    return JobSubmissionResponse(
        capture_id=job.capture_id,
        queue_position=position,
        estimated_wait_ms=services.monitor.estimate_wait_ms(depth),
    )


@router.get("/jobs/{capture_id}", response_model=JobProgressResponse)
async def get_job_progress(
    capture_id: str,
    services: DigestionServices = Depends(get_digestion_services),
) -> JobProgressResponse:
    progress = await services.notifier.get_progress(capture_id)
    if progress is None:
        raise NotFoundError(f"No digestion progress for capture {capture_id}")
    return _to_response(progress)


@router.get("/users/{user_id}/jobs", response_model=UserActiveJobsResponse)
async def get_user_jobs(
    user_id: str,
    services: DigestionServices = Depends(get_digestion_services),
) -> UserActiveJobsResponse:
    jobs = await services.notifier.get_user_active_jobs(user_id)
    return UserActiveJobsResponse(
        user_id=user_id, jobs=[_to_response(job) for job in jobs]
    )


@router.post(
    "/jobs/{capture_id}/cancel",
    response_model=SuccessResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def cancel_job(
    capture_id: str,
    services: DigestionServices = Depends(get_digestion_services),
) -> SuccessResponse:
    """
    Cancel a queued or running job.

    Cancellation is cooperative: a running job stops at its next checkpoint
    and nothing is persisted for it.
    """
    if not await services.processor.cancel(capture_id):
        raise NotFoundError(f"No active digestion job for capture {capture_id}")
    return SuccessResponse(message=f"Cancellation requested for {capture_id}")


@router.get("/dead-letters", response_model=DeadLetterResponse)
async def get_dead_letters(
    services: DigestionServices = Depends(get_digestion_services),
) -> DeadLetterResponse:
    jobs = await services.queue.dead_letters()
    return DeadLetterResponse(
        total=len(jobs), jobs=[job.to_payload() for job in jobs]
    )
