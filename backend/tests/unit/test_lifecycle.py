"""
Unit tests for starting and stopping the digestion services.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from digestion.services import lifecycle
from digestion.services.lifecycle import (
    SHUTDOWN_TIMEOUT_SECONDS,
    shutdown_digestion_services,
    startup_digestion_services,
)


def make_services(with_worker: bool = True) -> MagicMock:
    services = MagicMock()
    if with_worker:
        services.worker = MagicMock()
        services.worker.start = AsyncMock()
        services.worker.stop = AsyncMock()
    else:
        services.worker = None
    return services


class TestStartup:
    @pytest.mark.asyncio
    async def test_starts_worker_and_scheduler(self) -> None:
        services = make_services()

        with patch.object(lifecycle, "start_scheduler") as start_scheduler:
            result = await startup_digestion_services(services)

        assert result is services
        services.worker.start.assert_awaited_once()
        start_scheduler.assert_called_once_with(services)

    @pytest.mark.asyncio
    async def test_broker_mode_has_no_worker(self) -> None:
        services = make_services(with_worker=False)

        with patch.object(lifecycle, "start_scheduler") as start_scheduler:
            await startup_digestion_services(services)

        start_scheduler.assert_called_once_with(services)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_stops_everything(self) -> None:
        services = make_services()

        with patch.object(lifecycle, "stop_scheduler") as stop_scheduler, patch.object(
            lifecycle, "close_redis_pool", AsyncMock()
        ) as close_redis, patch.object(lifecycle, "close_db", AsyncMock()) as close_db:
            await shutdown_digestion_services(services)

        stop_scheduler.assert_called_once()
        services.worker.stop.assert_awaited_once_with(timeout=SHUTDOWN_TIMEOUT_SECONDS)
        close_redis.assert_awaited_once()
        close_db.assert_awaited_once()
