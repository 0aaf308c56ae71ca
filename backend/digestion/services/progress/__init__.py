"""
Progress Tracking

Progress store implementations and the factory that picks one from
settings (DIGESTION_PROGRESS_BACKEND=memory|redis).

Usage:
    from digestion.services.progress import create_progress_store

    store = create_progress_store()
    await store.start_tracking("cap-1", "user-1")
"""

import logging
from typing import Optional

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.services.progress.base import ProgressStore
from digestion.services.progress.memory import InMemoryProgressStore
from digestion.services.progress.redis_store import RedisProgressStore

logger = logging.getLogger(__name__)


def create_progress_store(
    config: Optional[DigestionSettings] = None, **kwargs
) -> ProgressStore:
    """
    Build the configured progress store.

    Args:
        config: Digestion settings, defaults to the global instance
        **kwargs: Passed to the store (e.g. client, clock)

    Raises:
        ValueError: For an unknown backend name
    """
    config = config or digestion_settings
    backend = config.PROGRESS_BACKEND.lower()

    if backend == "memory":
        store: ProgressStore = InMemoryProgressStore(
            retention_seconds=config.PROGRESS_RETENTION_SECONDS, **kwargs
        )
    elif backend == "redis":
        store = RedisProgressStore(
            key_prefix=config.PROGRESS_KEY_PREFIX,
            active_ttl_seconds=config.PROGRESS_ACTIVE_TTL_SECONDS,
            retention_seconds=config.PROGRESS_RETENTION_SECONDS,
            **kwargs,
        )
    else:
        raise ValueError(f"Unknown progress backend: {config.PROGRESS_BACKEND}")

    logger.info(f"Progress store: {type(store).__name__}")
    return store


__all__ = [
    "InMemoryProgressStore",
    "ProgressStore",
    "RedisProgressStore",
    "create_progress_store",
]
