"""
Unit tests for service composition.
"""

import pytest

from digestion.config.processing import DigestionSettings
from digestion.dependencies import (
    build_services,
    create_job_queue,
    get_services,
    set_services,
)
from digestion.enums import EventTopic
from digestion.services.jobs.queue import InMemoryJobQueue
from digestion.services.jobs.redis_queue import RedisJobQueue
from digestion.services.progress import InMemoryProgressStore, RedisProgressStore
from tests.conftest import make_job


class TestFactories:
    def test_memory_queue(self, digestion_config) -> None:
        queue = create_job_queue(digestion_config)

        assert isinstance(queue, InMemoryJobQueue)
        assert queue.prefetch == 3
        assert queue.overload_threshold == 100
        assert queue.backoff.delays_ms == [5000, 15000, 45000]

    def test_redis_queue(self, mock_redis) -> None:
        queue = create_job_queue(DigestionSettings(QUEUE_BACKEND="redis"), mock_redis)

        assert isinstance(queue, RedisJobQueue)

    def test_unknown_queue_backend(self) -> None:
        with pytest.raises(ValueError):
            create_job_queue(DigestionSettings(QUEUE_BACKEND="sqs"))


class TestBuildServices:
    def test_local_mode(self, digestion_config, mock_llm) -> None:
        services = build_services(digestion_config, llm=mock_llm)

        assert services.uses_broker is False
        assert services.worker is not None
        assert services.worker.queue is services.queue
        assert services.processor.queue is services.queue
        assert services.processor.monitor is services.monitor
        assert isinstance(services.store, InMemoryProgressStore)

    def test_shared_redis_client(self, mock_llm, mock_redis) -> None:
        config = DigestionSettings(QUEUE_BACKEND="redis", PROGRESS_BACKEND="redis")

        services = build_services(config, redis_client=mock_redis, llm=mock_llm)

        assert isinstance(services.queue, RedisJobQueue)
        assert isinstance(services.store, RedisProgressStore)

    def test_celery_mode_has_no_local_worker(self, mock_llm) -> None:
        config = DigestionSettings(DISPATCH_MODE="celery")

        services = build_services(config, llm=mock_llm)

        assert services.uses_broker is True
        assert services.worker is None

    @pytest.mark.asyncio
    async def test_overload_published_on_bus(self, mock_llm) -> None:
        config = DigestionSettings(OVERLOAD_THRESHOLD=1)
        services = build_services(config, llm=mock_llm)
        events = []
        services.bus.subscribe(EventTopic.QUEUE_OVERLOADED, events.append)

        await services.queue.enqueue(make_job("a"))
        await services.queue.enqueue(make_job("b"))

        assert events == [{"depth": 2, "threshold": 1}]


class TestProcessInstance:
    def test_set_and_get(self, digestion_config, mock_llm) -> None:
        services = build_services(digestion_config, llm=mock_llm)
        set_services(services)
        try:
            assert get_services() is services
        finally:
            set_services(None)
