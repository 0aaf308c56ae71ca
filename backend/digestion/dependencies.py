"""
Service Composition and FastAPI Dependencies

Wires the digestion services together from settings and keeps one instance
of each per process:

    queue ----------+---> monitor
                    |
    progress store -+---> notifier ---> processor ---> worker (local mode)
                    |                      ^
    event bus ------+----------------------+

Backends are picked from DigestionSettings:
- QUEUE_BACKEND: memory | redis
- PROGRESS_BACKEND: memory | redis
- DISPATCH_MODE: local (in-process worker) | celery (broker, no local worker)

Usage:
    from fastapi import Depends
    from digestion.dependencies import DigestionServices, get_digestion_services

    @router.get("/...")
    async def handler(services: DigestionServices = Depends(get_digestion_services)):
        ...
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.enums import EventTopic
from digestion.services.digestion.chunker import ContentChunker
from digestion.services.digestion.client import DigestionClient
from digestion.services.events import EventBus
from digestion.services.extractor import SqlContentExtractor
from digestion.services.jobs.backoff import BackoffPolicy
from digestion.services.jobs.queue import InMemoryJobQueue, JobQueue
from digestion.services.jobs.redis_queue import RedisJobQueue
from digestion.services.llm.client import LLMClient
from digestion.services.monitoring import QueueMonitor
from digestion.services.notifications import ProgressNotificationService
from digestion.services.persistence import SqlPersistenceGateway
from digestion.services.processor import DigestionProcessor
from digestion.services.progress import create_progress_store
from digestion.services.progress.base import ProgressStore
from digestion.services.worker import DigestionWorker

logger = logging.getLogger(__name__)


@dataclass
class DigestionServices:
    """Process-wide digestion services."""

    config: DigestionSettings
    queue: JobQueue
    store: ProgressStore
    bus: EventBus
    notifier: ProgressNotificationService
    monitor: QueueMonitor
    processor: DigestionProcessor
    worker: Optional[DigestionWorker] = None

    @property
    def uses_broker(self) -> bool:
        return self.config.DISPATCH_MODE.lower() == "celery"


# =============================================================================
# Factories
# =============================================================================


def create_job_queue(
    config: Optional[DigestionSettings] = None,
    client: Optional[redis.Redis] = None,
) -> JobQueue:
    """
    Build the configured job queue.

    Raises:
        ValueError: For an unknown backend name
    """
    config = config or digestion_settings
    backend = config.QUEUE_BACKEND.lower()
    backoff = BackoffPolicy(config.RETRY_BACKOFF_MS)

    if backend == "memory":
        return InMemoryJobQueue(
            prefetch=config.PREFETCH_COUNT,
            backoff=backoff,
            overload_threshold=config.OVERLOAD_THRESHOLD,
        )
    if backend == "redis":
        return RedisJobQueue(
            prefetch=config.PREFETCH_COUNT,
            backoff=backoff,
            overload_threshold=config.OVERLOAD_THRESHOLD,
            client=client,
            prefix=config.QUEUE_KEY_PREFIX,
        )
    raise ValueError(f"Unknown queue backend: {config.QUEUE_BACKEND}")


def create_store(
    config: Optional[DigestionSettings] = None,
    client: Optional[redis.Redis] = None,
) -> ProgressStore:
    """Progress store for the configured backend, on `client` if given."""
    config = config or digestion_settings
    kwargs: dict[str, Any] = {}
    if client is not None and config.PROGRESS_BACKEND.lower() == "redis":
        kwargs["client"] = client
    return create_progress_store(config, **kwargs)


def build_processor(
    notifier: ProgressNotificationService,
    bus: EventBus,
    monitor: Optional[QueueMonitor] = None,
    queue: Optional[JobQueue] = None,
    config: Optional[DigestionSettings] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    llm: Optional[LLMClient] = None,
) -> DigestionProcessor:
    """Processor over the SQL extractor and persistence gateway."""
    config = config or digestion_settings
    chunker = ContentChunker(DigestionClient(llm=llm, config=config), config=config)
    return DigestionProcessor(
        extractor=SqlContentExtractor(session_maker),
        chunker=chunker,
        persistence=SqlPersistenceGateway(session_maker),
        notifier=notifier,
        bus=bus,
        monitor=monitor,
        queue=queue,
    )


def build_services(
    config: Optional[DigestionSettings] = None,
    redis_client: Optional[redis.Redis] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    llm: Optional[LLMClient] = None,
) -> DigestionServices:
    """Compose every digestion service from settings."""
    config = config or digestion_settings

    queue = create_job_queue(config, redis_client)
    store = create_store(config, redis_client)
    bus = EventBus()
    notifier = ProgressNotificationService(store, bus, config)
    monitor = QueueMonitor(queue, config)

    async def announce_overload(depth: int) -> None:
        await bus.publish(
            EventTopic.QUEUE_OVERLOADED,
            {"depth": depth, "threshold": queue.overload_threshold},
        )

    queue.add_overload_listener(announce_overload)

    processor = build_processor(
        notifier,
        bus,
        monitor=monitor,
        queue=queue,
        config=config,
        session_maker=session_maker,
        llm=llm,
    )

    services = DigestionServices(
        config=config,
        queue=queue,
        store=store,
        bus=bus,
        notifier=notifier,
        monitor=monitor,
        processor=processor,
    )
    if not services.uses_broker:
        services.worker = DigestionWorker(
            queue, processor, poll_interval=config.POLL_INTERVAL_SECONDS
        )

    logger.info(
        f"Digestion services ready (queue: {type(queue).__name__}, "
        f"progress: {type(store).__name__}, dispatch: {config.DISPATCH_MODE})"
    )
    return services


# =============================================================================
# Process-wide instance
# =============================================================================

_services: Optional[DigestionServices] = None


def get_services() -> DigestionServices:
    """Get or create the process-wide services."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[DigestionServices]) -> None:
    """Replace the process-wide services (None resets them)."""
    global _services
    _services = services


async def get_digestion_services() -> DigestionServices:
    """FastAPI dependency for the digestion services."""
    return get_services()
