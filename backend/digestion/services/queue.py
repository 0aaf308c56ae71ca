"""
Celery Queue Configuration

Broker topology for running digestion jobs on Celery workers instead of the
in-process worker (DIGESTION_DISPATCH_MODE=celery).

Topology (RabbitMQ):
    digestion (direct exchange)
        --digestion.job.queued--> digestion-jobs
            x-max-priority=10
            x-dead-letter-exchange=digestion-dlx
            x-dead-letter-routing-key=digestion.failed
    digestion-dlx (direct exchange)
        --digestion.failed--> digestion-failed

Scheduling rules carried over from the local queue:
- Broker priority 10 for high jobs, 5 for normal ones
- worker_prefetch_multiplier=1 with concurrency = prefetch, so a worker
  holds at most `prefetch` unacknowledged jobs
- Late acks: a job is acknowledged only after it finished. A rejected job
  (requeue=False) is dead-lettered by the broker into digestion-failed.

Usage:
    from digestion.services.queue import celery_app
    from digestion.services.tasks import publish_digestion_job

    publish_digestion_job(job)

    # Run worker: celery -A digestion.services.queue worker -l info
"""

from celery import Celery
from kombu import Exchange, Queue

from digestion.config import digestion_settings, settings

digestion_exchange = Exchange(
    digestion_settings.BROKER_EXCHANGE, type="direct", durable=True
)
dead_letter_exchange = Exchange(
    digestion_settings.BROKER_DLX, type="direct", durable=True
)

digestion_queue = Queue(
    digestion_settings.BROKER_QUEUE,
    exchange=digestion_exchange,
    routing_key=digestion_settings.BROKER_ROUTING_KEY,
    durable=True,
    queue_arguments={
        "x-max-priority": digestion_settings.BROKER_MAX_PRIORITY,
        "x-dead-letter-exchange": digestion_settings.BROKER_DLX,
        "x-dead-letter-routing-key": digestion_settings.BROKER_DLQ_ROUTING_KEY,
    },
)

dead_letter_queue = Queue(
    digestion_settings.BROKER_DLQ,
    exchange=dead_letter_exchange,
    routing_key=digestion_settings.BROKER_DLQ_ROUTING_KEY,
    durable=True,
)

celery_app = Celery(
    "digestion",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["digestion.services.tasks"],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Queues
    task_queues=(digestion_queue, dead_letter_queue),
    task_default_queue=digestion_settings.BROKER_QUEUE,
    task_routes={
        "digestion.services.tasks.digest_capture": {
            "queue": digestion_settings.BROKER_QUEUE,
            "exchange": digestion_settings.BROKER_EXCHANGE,
            "routing_key": digestion_settings.BROKER_ROUTING_KEY,
        },
    },
    task_queue_max_priority=digestion_settings.BROKER_MAX_PRIORITY,
    task_default_priority=digestion_settings.BROKER_PRIORITY_NORMAL,
    # Result expiration (1 hour)
    result_expires=3600,
    # Concurrency
    worker_concurrency=digestion_settings.PREFETCH_COUNT,
    worker_prefetch_multiplier=1,
    # Task acknowledgment
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)


def get_queue_stats() -> dict:
    """
    Get statistics about the broker queue.

    Returns:
        Dictionary with queue statistics
    """
    inspect = celery_app.control.inspect()

    active = inspect.active() or {}
    reserved = inspect.reserved() or {}
    scheduled = inspect.scheduled() or {}

    return {
        "active_tasks": sum(len(v) for v in active.values()),
        "queued_tasks": sum(len(v) for v in reserved.values()),
        "scheduled_tasks": sum(len(v) for v in scheduled.values()),
        "workers": list(active.keys()),
    }
