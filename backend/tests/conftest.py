"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests: settings,
controllable clocks, sample jobs and digestion responses, and mocks for
Redis and the LLM client.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from digestion.config.processing import DigestionSettings  # noqa: E402
from digestion.enums import Confidence, JobPriority  # noqa: E402
from digestion.models.digestion import DigestionResponse, Todo  # noqa: E402
from digestion.models.jobs import DigestionJob  # noqa: E402


# ============================================================================
# Environment Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """
    Set up test environment variables before any tests run.

    Tests never reach real services; these values only keep settings
    predictable.
    """
    original_env = os.environ.copy()

    os.environ.update(
        {
            "REDIS_URL": "redis://localhost:6379/1",
            "OPENAI_API_KEY": "test-api-key",
            "DEBUG": "true",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def digestion_config() -> DigestionSettings:
    """Digestion settings with defaults, independent of the environment."""
    return DigestionSettings(
        QUEUE_BACKEND="memory",
        PROGRESS_BACKEND="memory",
        DISPATCH_MODE="local",
        LLM_MODEL="",
    )


# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Manually advanced UTC clock for progress and notification tests."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


class FakeMsClock:
    """Manually advanced millisecond clock for queue backoff tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ms_clock() -> FakeMsClock:
    return FakeMsClock()


# ============================================================================
# Sample Data
# ============================================================================


def make_job(
    capture_id: str = "cap-1",
    user_id: str = "user-1",
    priority: JobPriority = JobPriority.NORMAL,
    retry_count: int = 0,
) -> DigestionJob:
    return DigestionJob(
        capture_id=capture_id,
        user_id=user_id,
        priority=priority,
        retry_count=retry_count,
    )


def make_response(
    summary: str = "A short summary of the captured thought.",
    ideas: Optional[list[str]] = None,
    todos: Optional[list[Todo]] = None,
    confidence: Confidence = Confidence.HIGH,
) -> DigestionResponse:
    return DigestionResponse(
        summary=summary,
        ideas=ideas if ideas is not None else ["The main idea of the capture"],
        todos=todos or [],
        confidence=confidence,
    )


@pytest.fixture
def sample_job() -> DigestionJob:
    return make_job()


@pytest.fixture
def sample_response() -> DigestionResponse:
    return make_response(
        summary="Planning a trip to Lisbon in May. Flights need booking soon.",
        ideas=["Lisbon trip in May", "Book flights early for better prices"],
        todos=[Todo(description="Book flights to Lisbon", deadline="Friday")],
    )


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """
    Create a mock Redis client for unit testing.

    This allows testing Redis-dependent code without a real Redis server.
    """
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    mock.incr = AsyncMock(return_value=1)
    mock.hget = AsyncMock(return_value=None)
    mock.hset = AsyncMock(return_value=1)
    mock.hsetnx = AsyncMock(return_value=True)
    mock.hdel = AsyncMock(return_value=1)
    mock.hexists = AsyncMock(return_value=False)
    mock.zadd = AsyncMock(return_value=1)
    mock.zrem = AsyncMock(return_value=1)
    mock.zcard = AsyncMock(return_value=0)
    mock.zrank = AsyncMock(return_value=0)
    mock.zpopmin = AsyncMock(return_value=[])
    mock.zrangebyscore = AsyncMock(return_value=[])
    mock.rpush = AsyncMock(return_value=1)
    mock.lrange = AsyncMock(return_value=[])
    mock.sadd = AsyncMock(return_value=1)
    mock.srem = AsyncMock(return_value=1)
    mock.scard = AsyncMock(return_value=0)
    mock.smembers = AsyncMock(return_value=set())
    return mock


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM client whose complete() is an AsyncMock returning (content, usage)."""
    mock = MagicMock()
    mock.complete = AsyncMock()
    return mock
