"""
Integration Tests for the Local Digestion Pipeline

Submits jobs to a running DigestionWorker and waits for the resulting
events. Backoff delays are shortened so retries finish within the test.

Run with: pytest tests/integration/test_pipeline.py -v
"""

import asyncio
import time
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import litellm
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from digestion.config.processing import DigestionSettings
from digestion.dependencies import build_services, get_digestion_services
from digestion.enums import ContentType, EventTopic, FailureCategory, JobStatus
from digestion.routers import digestion
from digestion.services.digestion import TokenCounter
from digestion.services.digestion.errors import ExtractionFailedError
from digestion.services.extractor import ExtractedContent
from tests.conftest import make_job

pytestmark = pytest.mark.integration

VALID_JSON = {
    "summary": "Call mom about Sunday lunch plans.",
    "ideas": ["Family lunch on Sunday"],
    "todos": [{"description": "Call mom", "deadline": "Saturday"}],
    "confidence": "high",
}


@pytest.fixture
def config() -> DigestionSettings:
    return DigestionSettings(
        QUEUE_BACKEND="memory",
        PROGRESS_BACKEND="memory",
        DISPATCH_MODE="local",
        LLM_MODEL="",
        POLL_INTERVAL_SECONDS=0.01,
        RETRY_BACKOFF_MS=[10, 10, 10],
    )


@pytest.fixture
def services(config, mock_llm):
    mock_llm.complete.return_value = (VALID_JSON, None)
    services = build_services(config, llm=mock_llm)

    processor = services.processor
    processor.extractor = MagicMock()
    processor.extractor.extract = AsyncMock(
        return_value=ExtractedContent(
            content="Call mom about Sunday lunch", content_type=ContentType.TEXT
        )
    )
    processor.persistence = MagicMock()
    processor.persistence.save_digestion = AsyncMock(return_value="thought-1")
    processor.chunker.counter = TokenCounter(use_tokenizer=False)
    return services


async def wait_for(bus, topic: EventTopic, count: int = 1, timeout: float = 5.0):
    """Collect `count` events published on `topic`."""
    events = []
    done = asyncio.Event()

    def handler(event) -> None:
        events.append(event)
        if len(events) >= count:
            done.set()

    bus.subscribe(topic, handler)
    return events, asyncio.wait_for(done.wait(), timeout)


class TestLocalPipeline:
    @pytest.mark.asyncio
    async def test_job_completes(self, services) -> None:
        events, done = await wait_for(services.bus, EventTopic.DIGESTION_COMPLETED)
        await services.worker.start()
        try:
            await services.queue.enqueue(make_job())
            await done
        finally:
            await services.worker.stop(timeout=5)

        assert events[0].thought_id == "thought-1"
        assert events[0].todos_count == 1
        progress = await services.store.get_progress("cap-1")
        assert progress.status == JobStatus.COMPLETED
        assert services.monitor.jobs_processed == 1
        assert await services.queue.in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_long_content_is_chunked(self, services, mock_llm) -> None:
        services.processor.extractor.extract.return_value = ExtractedContent(
            content="word " * 5000, content_type=ContentType.TEXT
        )
        events, done = await wait_for(services.bus, EventTopic.DIGESTION_COMPLETED)
        await services.worker.start()
        try:
            await services.queue.enqueue(make_job())
            await done
        finally:
            await services.worker.stop(timeout=5)

        assert events[0].was_chunked is True
        assert events[0].chunk_count == 2
        assert mock_llm.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, services, mock_llm) -> None:
        mock_llm.complete.side_effect = [
            litellm.RateLimitError(
                message="Too many requests", llm_provider="openai", model="gpt-4o-mini"
            ),
            (VALID_JSON, None),
        ]
        events, done = await wait_for(services.bus, EventTopic.DIGESTION_COMPLETED)
        await services.worker.start()
        try:
            await services.queue.enqueue(make_job())
            await done
        finally:
            await services.worker.stop(timeout=5)

        assert len(events) == 1
        assert await services.queue.dead_letters() == []
        assert services.monitor.jobs_failed == 0

    @pytest.mark.asyncio
    async def test_terminal_failure_dead_letters(self, services) -> None:
        services.processor.extractor.extract.side_effect = ExtractionFailedError(
            "Empty content for capture cap-1"
        )
        events, done = await wait_for(services.bus, EventTopic.DIGESTION_FAILED)
        await services.worker.start()
        try:
            await services.queue.enqueue(make_job())
            await done
        finally:
            await services.worker.stop(timeout=5)

        assert events[0].category == FailureCategory.EXTRACTION_FAILED
        assert events[0].attempts == 1
        assert [j.capture_id for j in await services.queue.dead_letters()] == ["cap-1"]
        progress = await services.store.get_progress("cap-1")
        assert progress.status == JobStatus.FAILED
        assert services.monitor.jobs_failed == 1


class TestApiSubmission:
    def test_submit_and_poll(self, services) -> None:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await services.worker.start()
            yield
            await services.worker.stop(timeout=5)

        app = FastAPI(lifespan=lifespan)
        app.include_router(digestion.router)
        app.dependency_overrides[get_digestion_services] = lambda: services

        with TestClient(app) as client:
            response = client.post(
                "/api/digestion/jobs", json={"captureId": "cap-1", "userId": "user-1"}
            )
            assert response.status_code == 202

            body = {}
            for _ in range(100):
                body = client.get("/api/digestion/jobs/cap-1").json()
                if body.get("status") == "completed":
                    break
                time.sleep(0.02)

        assert body["status"] == "completed"
        assert body["percentage"] == 100
