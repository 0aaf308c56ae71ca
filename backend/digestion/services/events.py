"""
In-Process Event Bus

Publish/subscribe for digestion events (completion, failure, progress
notifications, queue overload). Handlers may be plain functions or
coroutines; publish() awaits coroutine handlers in subscription order.

A failing handler is logged and does not stop delivery to the remaining
handlers or fail the publisher: the digestion result is already committed
by the time completion events are published.

Usage:
    from digestion.services.events import EventBus
    from digestion.enums import EventTopic

    bus = EventBus()
    bus.subscribe(EventTopic.DIGESTION_COMPLETED, handle_completed)
    await bus.publish(EventTopic.DIGESTION_COMPLETED, event)
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Union

from digestion.enums import EventTopic

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]
Topic = Union[EventTopic, str]


def _topic_name(topic: Topic) -> str:
    return topic.value if isinstance(topic, EventTopic) else topic


class EventBus:
    """Topic-based in-process publish/subscribe."""

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, topic: Topic, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler for a topic.

        Returns:
            A function that removes the subscription
        """
        name = _topic_name(topic)
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def handler_count(self, topic: Topic) -> int:
        return len(self._handlers.get(_topic_name(topic), []))

    async def publish(self, topic: Topic, payload: Any) -> int:
        """
        Deliver payload to every handler of topic.

        Returns:
            Number of handlers that ran without raising
        """
        name = _topic_name(topic)
        delivered = 0
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(f"Event handler {handler!r} failed for {name}")
        return delivered
