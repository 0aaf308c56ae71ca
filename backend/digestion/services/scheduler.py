"""
Scheduled Job Configuration

Periodic maintenance jobs using APScheduler:
- Progress sweep: drops terminal progress records past their retention
  window (every 60s)
- Notification scan: evaluates still-processing and timeout-warning
  thresholds for every active job (every 5s)
- Queue health: logs depth and overload state (every 30s)

Execution Context:
    The scheduler runs IN-PROCESS with FastAPI and is started/stopped via
    the lifespan context manager in digestion/main.py.

Why APScheduler (AsyncIOScheduler)?
    - Shares FastAPI's asyncio event loop, so jobs can await the services
    - Interval triggers with coalescing for missed runs

Limitations:
    - Single instance only: with several API replicas each runs its own
      scan. Notification state is per process, so a job is only notified by
      the process that tracks it.

Usage:
    start_scheduler(services)  # On app startup
    stop_scheduler()           # On app shutdown
"""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from digestion.dependencies import DigestionServices

logger = logging.getLogger(__name__)

QUEUE_HEALTH_INTERVAL_SECONDS = 30

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def sweep_progress(services: "DigestionServices") -> int:
    """Remove expired terminal progress records."""
    removed = await services.store.cleanup()
    if removed:
        logger.info(f"Progress sweep removed {removed} records")
    return removed


async def scan_notifications(services: "DigestionServices") -> int:
    """Emit due still-processing and timeout-warning notifications."""
    return await services.notifier.check_active_jobs()


async def check_queue_health(services: "DigestionServices") -> bool:
    """Log queue depth; returns True while the queue is overloaded."""
    overloaded = await services.monitor.is_overloaded()
    depth = await services.monitor.get_queue_depth()
    stats = services.monitor.get_stats()
    logger.debug(
        f"Queue depth {depth}, {stats['total_jobs']} jobs done "
        f"(success rate {stats['success_rate']}, avg {stats['avg_latency_ms']}ms)"
    )
    return overloaded


def setup_scheduled_jobs(services: "DigestionServices") -> None:
    """Configure all maintenance jobs."""
    config = services.config

    scheduler.add_job(
        sweep_progress,
        IntervalTrigger(seconds=config.PROGRESS_SWEEP_INTERVAL_SECONDS),
        args=[services],
        id="progress_sweep",
        name="Progress Sweep",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )

    scheduler.add_job(
        scan_notifications,
        IntervalTrigger(seconds=config.NOTIFICATION_SCAN_INTERVAL_SECONDS),
        args=[services],
        id="notification_scan",
        name="Progress Notification Scan",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )

    scheduler.add_job(
        check_queue_health,
        IntervalTrigger(seconds=QUEUE_HEALTH_INTERVAL_SECONDS),
        args=[services],
        id="queue_health",
        name="Queue Health Check",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )

    logger.info("Scheduled jobs configured:")
    logger.info(
        f"  - Progress sweep: every {config.PROGRESS_SWEEP_INTERVAL_SECONDS}s"
    )
    logger.info(
        f"  - Notification scan: every {config.NOTIFICATION_SCAN_INTERVAL_SECONDS}s"
    )
    logger.info(f"  - Queue health: every {QUEUE_HEALTH_INTERVAL_SECONDS}s")


def start_scheduler(services: "DigestionServices") -> None:
    """Start the scheduler and configure jobs."""
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    setup_scheduled_jobs(services)
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if not scheduler.running:
        logger.warning("Scheduler not running")
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def get_scheduled_jobs() -> list[dict]:
    """Get list of scheduled jobs with their next run times."""
    jobs = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next run time yet
        next_run = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": (next_run.isoformat() if next_run else None),
                "trigger": str(job.trigger),
            }
        )
    return jobs

