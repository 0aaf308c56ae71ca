"""
Unit Tests for the In-Process Event Bus
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from digestion.enums import EventTopic
from digestion.services.events import EventBus


class TestEventBus:
    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self) -> None:
        bus = EventBus()
        sync_handler = MagicMock()
        async_handler = AsyncMock()
        bus.subscribe(EventTopic.DIGESTION_COMPLETED, sync_handler)
        bus.subscribe(EventTopic.DIGESTION_COMPLETED, async_handler)

        delivered = await bus.publish(EventTopic.DIGESTION_COMPLETED, {"id": 1})

        assert delivered == 2
        sync_handler.assert_called_once_with({"id": 1})
        async_handler.assert_awaited_once_with({"id": 1})

    @pytest.mark.asyncio
    async def test_string_and_enum_topics_match(self) -> None:
        bus = EventBus()
        handler = MagicMock()
        bus.subscribe("queue.overloaded", handler)

        await bus.publish(EventTopic.QUEUE_OVERLOADED, {"depth": 101})

        handler.assert_called_once()
        assert bus.handler_count(EventTopic.QUEUE_OVERLOADED) == 1

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_delivery(self) -> None:
        bus = EventBus()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        after = MagicMock()
        bus.subscribe(EventTopic.DIGESTION_FAILED, failing)
        bus.subscribe(EventTopic.DIGESTION_FAILED, after)

        delivered = await bus.publish(EventTopic.DIGESTION_FAILED, "event")

        assert delivered == 1
        after.assert_called_once_with("event")

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        handler = MagicMock()
        unsubscribe = bus.subscribe(EventTopic.PROGRESS_UPDATE, handler)

        unsubscribe()
        unsubscribe()
        delivered = await bus.publish(EventTopic.PROGRESS_UPDATE, "event")

        assert delivered == 0
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self) -> None:
        assert await EventBus().publish("nobody.listens", None) == 0
