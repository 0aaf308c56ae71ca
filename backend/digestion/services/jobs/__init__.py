"""
Job Scheduling

Priority job queues with bounded concurrency, retry backoff and dead
lettering.

Usage:
    from digestion.services.jobs import InMemoryJobQueue, BackoffPolicy

    queue = InMemoryJobQueue(prefetch=3, backoff=BackoffPolicy())
"""

from digestion.services.jobs.backoff import BackoffPolicy, NackResult
from digestion.services.jobs.errors import DuplicateJobError, QueueOverloadedError
from digestion.services.jobs.queue import InMemoryJobQueue, JobQueue
from digestion.services.jobs.redis_queue import RedisJobQueue

__all__ = [
    "BackoffPolicy",
    "DuplicateJobError",
    "InMemoryJobQueue",
    "JobQueue",
    "NackResult",
    "QueueOverloadedError",
    "RedisJobQueue",
]
