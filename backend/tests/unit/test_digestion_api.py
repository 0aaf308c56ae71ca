"""
Unit Tests for the Digestion API

Routes run against in-memory services through dependency overrides; the
application lifespan (worker, scheduler) is not started.

These tests verify:
- Job submission (202), duplicates (409), overload (503), bad bodies (422)
- Progress and active-job queries with camelCase responses
- Cancellation and dead-letter listing
- Metrics exposition and the basic health check
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from digestion.config.processing import DigestionSettings
from digestion.dependencies import build_services, get_digestion_services
from digestion.middleware.error_handling import setup_error_handling
from digestion.routers import digestion, health, metrics
from tests.conftest import make_job


def create_test_app(services) -> FastAPI:
    app = FastAPI()
    setup_error_handling(app)
    app.include_router(digestion.router)
    app.include_router(metrics.router)
    app.include_router(health.router)
    app.dependency_overrides[get_digestion_services] = lambda: services
    return app


@pytest.fixture
def services(digestion_config, mock_llm):
    return build_services(digestion_config, llm=mock_llm)


@pytest.fixture
def client(services) -> TestClient:
    return TestClient(create_test_app(services))


class TestSubmitJob:
    def test_accepted(self, client, services) -> None:
        response = client.post(
            "/api/digestion/jobs",
            json={"captureId": "cap-1", "userId": "user-1", "priority": "high"},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["captureId"] == "cap-1"
        assert body["status"] == "queued"
        assert body["queuePosition"] == 1
        assert body["estimatedWaitMs"] == 20000

    def test_position_respects_priority(self, client) -> None:
        client.post("/api/digestion/jobs", json={"captureId": "a", "userId": "u"})
        response = client.post(
            "/api/digestion/jobs",
            json={"captureId": "b", "userId": "u", "priority": "high"},
        )

        assert response.json()["queuePosition"] == 1

    def test_duplicate_rejected(self, client) -> None:
        body = {"captureId": "cap-1", "userId": "user-1"}
        client.post("/api/digestion/jobs", json=body)

        response = client.post("/api/digestion/jobs", json=body)

        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_job"
        assert "error_id" in response.json()

    def test_unknown_field_rejected(self, client) -> None:
        response = client.post(
            "/api/digestion/jobs",
            json={"captureId": "cap-1", "userId": "user-1", "urgent": True},
        )

        assert response.status_code == 422

    def test_overloaded(self, mock_llm) -> None:
        config = DigestionSettings(
            QUEUE_BACKEND="memory",
            PROGRESS_BACKEND="memory",
            DISPATCH_MODE="local",
            OVERLOAD_THRESHOLD=1,
        )
        services = build_services(config, llm=mock_llm)
        client = TestClient(create_test_app(services))
        client.post("/api/digestion/jobs", json={"captureId": "a", "userId": "u"})
        client.post("/api/digestion/jobs", json={"captureId": "b", "userId": "u"})

        response = client.post(
            "/api/digestion/jobs", json={"captureId": "c", "userId": "u"}
        )

        assert response.status_code == 503
        assert response.json()["error"] == "queue_overloaded"

    def test_broker_dispatch(self, mock_llm) -> None:
        config = DigestionSettings(
            QUEUE_BACKEND="memory", PROGRESS_BACKEND="memory", DISPATCH_MODE="celery"
        )
        services = build_services(config, llm=mock_llm)
        assert services.worker is None
        client = TestClient(create_test_app(services))

        with patch(
            "digestion.services.tasks.publish_digestion_job", return_value="task-1"
        ) as publish:
            response = client.post(
                "/api/digestion/jobs", json={"captureId": "cap-1", "userId": "u"}
            )

        assert response.status_code == 202
        assert response.json()["queuePosition"] == 1
        published = publish.call_args.args[0]
        assert published.capture_id == "cap-1"


class TestProgress:
    def test_unknown_job(self, client) -> None:
        response = client.get("/api/digestion/jobs/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_job_progress(self, client, services) -> None:
        await services.store.start_tracking("cap-1", "user-1")
        await services.store.update_progress("cap-1", 40)

        response = client.get("/api/digestion/jobs/cap-1")

        assert response.status_code == 200
        body = response.json()
        assert body["captureId"] == "cap-1"
        assert body["status"] == "digesting"
        assert body["percentage"] == 40
        assert "startedAt" in body

    @pytest.mark.asyncio
    async def test_user_active_jobs(self, client, services) -> None:
        await services.store.start_tracking("a", "user-1")
        await services.store.start_tracking("b", "user-1")
        await services.store.complete_tracking("b")

        response = client.get("/api/digestion/users/user-1/jobs")

        body = response.json()
        assert body["userId"] == "user-1"
        assert [job["captureId"] for job in body["jobs"]] == ["a"]


class TestCancel:
    def test_cancel_unknown(self, client) -> None:
        response = client.post("/api/digestion/jobs/missing/cancel")

        assert response.status_code == 404

    def test_cancel_queued(self, client, services) -> None:
        client.post("/api/digestion/jobs", json={"captureId": "cap-1", "userId": "u"})

        response = client.post("/api/digestion/jobs/cap-1/cancel")

        assert response.status_code == 202
        assert response.json()["success"] is True
        assert services.processor.is_cancelled("cap-1") is True


class TestDeadLetters:
    @pytest.mark.asyncio
    async def test_listing(self, client, services) -> None:
        await services.queue.enqueue(make_job("cap-9"))
        job = await services.queue.dequeue()
        await services.queue.nack(job, requeue=False)

        response = client.get("/api/digestion/dead-letters")

        body = response.json()
        assert body["total"] == 1
        assert body["jobs"][0]["captureId"] == "cap-9"


class TestMetricsAndHealth:
    def test_metrics(self, client) -> None:
        client.post("/api/digestion/jobs", json={"captureId": "a", "userId": "u"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "digestion_queue_depth 1" in response.text

    def test_health(self, client) -> None:
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
