"""
Progress Notification Service

Wraps the progress store and turns raw percentage updates into user-facing
events on the event bus:

- progress.update            every state change (queued, processing,
                             completed, failed) with an ETA where one exists
- progress.still-processing  first at 10s elapsed, then at most every 10s
- progress.timeout-warning   once per job at 30s elapsed

The "last fired" state per job lives here, keyed by capture ID, and is
removed as soon as the job completes or fails, so it only grows with the
number of in-flight jobs.

With a store shared between processes (Redis), the API scan and the worker
both watch a job; each notification is also claimed in the store first so
only one of them sends it.

Thresholds are checked on every update and by check_active_jobs(), which the
maintenance scheduler runs periodically so long provider calls (no progress
updates for up to 30s) still produce notifications.

Usage:
    from digestion.services.notifications import ProgressNotificationService

    notifier = ProgressNotificationService(store, bus)
    await notifier.start_tracking("cap-1", "user-1", queue_position=2)
    await notifier.update_progress("cap-1", 40)
    await notifier.complete_tracking("cap-1")
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.enums import EventTopic, ProgressPhase
from digestion.models.events import ProgressUpdate, TimeoutWarning
from digestion.models.jobs import JobProgress
from digestion.services.events import EventBus
from digestion.services.progress.base import (
    STILL_PROCESSING_CLAIM,
    TIMEOUT_WARNING_CLAIM,
    Clock,
    ProgressStore,
    elapsed_ms,
)

logger = logging.getLogger(__name__)


@dataclass
class _NotificationState:
    last_still_processing_at: Optional[datetime] = None
    timeout_warned: bool = False


class ProgressNotificationService:
    """
    Progress tracking with rate-limited notifications.

    Args:
        store: Progress store (single source of truth for job status)
        bus: Event bus notifications are published on
        config: Thresholds and average job duration
        clock: Source of the current UTC time; defaults to the store's clock
    """

    def __init__(
        self,
        store: ProgressStore,
        bus: EventBus,
        config: Optional[DigestionSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.bus = bus
        self.config = config or digestion_settings
        self.clock = clock or store.clock
        self._state: dict[str, _NotificationState] = {}

    # =========================================================================
    # ETA
    # =========================================================================

    def estimate_remaining_ms(
        self,
        queue_position: Optional[int] = None,
        elapsed: Optional[int] = None,
        percentage: Optional[float] = None,
    ) -> Optional[int]:
        """
        Estimated time to completion.

        Queued jobs: position x average job duration. Processing jobs:
        extrapolated from elapsed time and percentage. None when neither
        applies (e.g. 0% processed).
        """
        if queue_position is not None:
            return queue_position * self.config.AVG_JOB_DURATION_MS

        if elapsed is not None and percentage:
            estimated_total = elapsed / percentage * 100
            return max(0, int(estimated_total - elapsed))

        return None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def notify_queued(
        self, capture_id: str, user_id: str, queue_position: int
    ) -> None:
        """Announce a freshly submitted job before any worker picks it up."""
        await self.bus.publish(
            EventTopic.PROGRESS_UPDATE,
            ProgressUpdate(
                capture_id=capture_id,
                user_id=user_id,
                phase=ProgressPhase.QUEUED,
                elapsed_ms=0,
                queue_position=queue_position,
                estimated_remaining_ms=self.estimate_remaining_ms(queue_position),
            ),
        )

    async def start_tracking(
        self, capture_id: str, user_id: str, queue_position: Optional[int] = None
    ) -> JobProgress:
        progress = await self.store.start_tracking(capture_id, user_id)
        self._state[capture_id] = _NotificationState()

        await self.bus.publish(
            EventTopic.PROGRESS_UPDATE,
            ProgressUpdate(
                capture_id=capture_id,
                user_id=user_id,
                phase=ProgressPhase.QUEUED,
                elapsed_ms=0,
                queue_position=queue_position,
                estimated_remaining_ms=self.estimate_remaining_ms(queue_position),
            ),
        )
        logger.debug(
            f"Progress tracking started: {capture_id} "
            f"(queue position: {queue_position})"
        )
        return progress

    async def update_progress(
        self, capture_id: str, percentage: float
    ) -> Optional[JobProgress]:
        progress = await self.store.update_progress(capture_id, percentage)
        if progress is None or progress.is_terminal:
            return None

        elapsed = elapsed_ms(progress.started_at, self.clock())
        await self.bus.publish(
            EventTopic.PROGRESS_UPDATE,
            ProgressUpdate(
                capture_id=capture_id,
                user_id=progress.user_id,
                phase=ProgressPhase.PROCESSING,
                elapsed_ms=elapsed,
                estimated_remaining_ms=self.estimate_remaining_ms(
                    elapsed=elapsed, percentage=progress.percentage
                ),
            ),
        )
        await self._check_thresholds(progress, elapsed)
        return progress

    async def complete_tracking(self, capture_id: str) -> Optional[JobProgress]:
        progress = await self.store.complete_tracking(capture_id)
        self._state.pop(capture_id, None)
        if progress is None:
            return None

        await self.bus.publish(
            EventTopic.PROGRESS_UPDATE,
            ProgressUpdate(
                capture_id=capture_id,
                user_id=progress.user_id,
                phase=ProgressPhase.COMPLETED,
                elapsed_ms=progress.duration_ms or 0,
            ),
        )
        return progress

    async def fail_tracking(
        self, capture_id: str, error: str
    ) -> Optional[JobProgress]:
        progress = await self.store.fail_tracking(capture_id, error)
        self._state.pop(capture_id, None)
        if progress is None:
            return None

        await self.bus.publish(
            EventTopic.PROGRESS_UPDATE,
            ProgressUpdate(
                capture_id=capture_id,
                user_id=progress.user_id,
                phase=ProgressPhase.FAILED,
                elapsed_ms=progress.duration_ms or 0,
            ),
        )
        return progress

    async def get_progress(self, capture_id: str) -> Optional[JobProgress]:
        return await self.store.get_progress(capture_id)

    async def get_user_active_jobs(self, user_id: str) -> list[JobProgress]:
        return await self.store.get_user_active_jobs(user_id)

    def tracked_job_ids(self) -> set[str]:
        """Capture IDs that currently hold notification state."""
        return set(self._state)

    # =========================================================================
    # Thresholds
    # =========================================================================

    async def check_active_jobs(self) -> int:
        """
        Evaluate notification thresholds for every active job.

        Percentages are left untouched.

        Returns:
            Number of notifications emitted
        """
        emitted = 0
        now = self.clock()
        active = await self.store.get_all_active_jobs()
        for progress in active:
            emitted += await self._check_thresholds(
                progress, elapsed_ms(progress.started_at, now)
            )

        # Jobs finished or expired elsewhere no longer need state here
        active_ids = {p.capture_id for p in active}
        for capture_id in set(self._state) - active_ids:
            del self._state[capture_id]

        return emitted

    async def _check_thresholds(self, progress: JobProgress, elapsed: int) -> int:
        state = self._state.setdefault(progress.capture_id, _NotificationState())
        emitted = 0
        if await self._check_still_processing(progress, elapsed, state):
            emitted += 1
        if await self._check_timeout_warning(progress, elapsed, state):
            emitted += 1
        return emitted

    async def _check_still_processing(
        self, progress: JobProgress, elapsed: int, state: _NotificationState
    ) -> bool:
        if elapsed < self.config.STILL_PROCESSING_THRESHOLD_MS:
            return False

        now = self.clock()
        if state.last_still_processing_at is not None:
            since_last = elapsed_ms(state.last_still_processing_at, now)
            if since_last < self.config.STILL_PROCESSING_INTERVAL_MS:
                return False

        state.last_still_processing_at = now
        if not await self.store.claim_notification(
            progress.capture_id,
            STILL_PROCESSING_CLAIM,
            self.config.STILL_PROCESSING_INTERVAL_MS,
        ):
            return False

        await self.bus.publish(
            EventTopic.PROGRESS_STILL_PROCESSING,
            ProgressUpdate(
                capture_id=progress.capture_id,
                user_id=progress.user_id,
                phase=ProgressPhase.PROCESSING,
                elapsed_ms=elapsed,
            ),
        )
        logger.debug(f"Still processing: {progress.capture_id} ({elapsed}ms)")
        return True

    async def _check_timeout_warning(
        self, progress: JobProgress, elapsed: int, state: _NotificationState
    ) -> bool:
        threshold = self.config.TIMEOUT_WARNING_THRESHOLD_MS
        if elapsed < threshold or state.timeout_warned:
            return False

        state.timeout_warned = True
        if not await self.store.claim_notification(
            progress.capture_id,
            TIMEOUT_WARNING_CLAIM,
            self.config.PROGRESS_ACTIVE_TTL_SECONDS * 1000,
        ):
            return False

        await self.bus.publish(
            EventTopic.PROGRESS_TIMEOUT_WARNING,
            TimeoutWarning(
                capture_id=progress.capture_id,
                user_id=progress.user_id,
                elapsed_ms=elapsed,
                threshold_ms=threshold,
            ),
        )
        logger.warning(f"Timeout warning: {progress.capture_id} ({elapsed}ms)")
        return True
