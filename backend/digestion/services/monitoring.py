"""
Queue Monitoring

Counters and latency samples for digestion jobs, queue depth and overload
detection, and a plain-text metrics exposition in the Prometheus text format
for the /metrics endpoint.

Latency is kept as a rolling window of the last 100 samples; the exposed
latency gauge is their mean.

Usage:
    from digestion.services.monitoring import QueueMonitor

    monitor = QueueMonitor(queue)
    monitor.record_job_processed(latency_ms=1840)
    text = await monitor.render_metrics()
"""

import logging
import math
from collections import deque
from typing import Optional

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.models.events import QueueMetrics
from digestion.services.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

METRIC_DEFINITIONS = [
    (
        "digestion_jobs_processed_total",
        "Total number of digestion jobs processed",
        "counter",
        "jobs_processed",
    ),
    (
        "digestion_jobs_failed_total",
        "Total number of digestion jobs failed",
        "counter",
        "jobs_failed",
    ),
    (
        "digestion_job_latency_milliseconds",
        "Average job processing latency",
        "gauge",
        "avg_latency_ms",
    ),
    (
        "digestion_queue_depth",
        "Current number of jobs in queue",
        "gauge",
        "current_queue_depth",
    ),
]


class QueueMonitor:
    """
    Job metrics for one process.

    Args:
        queue: Queue whose depth and overload state are reported
        config: Prefetch, average job duration, overload threshold
    """

    def __init__(self, queue: JobQueue, config: Optional[DigestionSettings] = None):
        self.queue = queue
        self.config = config or digestion_settings
        self.jobs_processed = 0
        self.jobs_failed = 0
        self._latencies: deque[int] = deque(maxlen=self.config.MAX_LATENCY_SAMPLES)

    def record_job_processed(self, latency_ms: Optional[int] = None) -> None:
        self.jobs_processed += 1
        if latency_ms is not None:
            self.record_job_latency(latency_ms)

    def record_job_failed(self) -> None:
        self.jobs_failed += 1

    def record_job_latency(self, latency_ms: int) -> None:
        self._latencies.append(max(0, int(latency_ms)))

    @property
    def avg_latency_ms(self) -> int:
        if not self._latencies:
            return 0
        return round(sum(self._latencies) / len(self._latencies))

    async def get_queue_depth(self) -> int:
        return await self.queue.depth()

    async def is_overloaded(self) -> bool:
        """True when queue depth exceeds the overload threshold."""
        depth = await self.get_queue_depth()
        overloaded = depth > self.queue.overload_threshold
        if overloaded:
            logger.warning(
                f"Queue overloaded: {depth} jobs "
                f"(threshold: {self.queue.overload_threshold})"
            )
        return overloaded

    def estimate_wait_ms(self, queue_depth: int) -> int:
        """
        Estimated wait for a new job.

        Formula: ceil(depth / prefetch) * average job duration
        """
        if queue_depth <= 0:
            return 0
        batches = math.ceil(queue_depth / self.queue.prefetch)
        return batches * self.config.AVG_JOB_DURATION_MS

    async def get_metrics(self) -> QueueMetrics:
        return QueueMetrics(
            jobs_processed=self.jobs_processed,
            jobs_failed=self.jobs_failed,
            avg_latency_ms=self.avg_latency_ms,
            current_queue_depth=await self.get_queue_depth(),
        )

    async def render_metrics(self) -> str:
        """Metrics in the Prometheus text exposition format."""
        metrics = await self.get_metrics()

        blocks = []
        for name, help_text, metric_type, field in METRIC_DEFINITIONS:
            blocks.append(
                f"# HELP {name} {help_text}\n"
                f"# TYPE {name} {metric_type}\n"
                f"{name} {getattr(metrics, field)}"
            )
        return "\n\n".join(blocks) + "\n"

    def get_stats(self) -> dict:
        """Success rate and totals for logging and health checks."""
        total = self.jobs_processed + self.jobs_failed
        success_rate = self.jobs_processed / total if total else 0.0
        return {
            "success_rate": round(success_rate, 2),
            "total_jobs": total,
            "avg_latency_ms": self.avg_latency_ms,
        }
