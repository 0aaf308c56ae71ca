"""
Digestion Pipeline Configuration

Tunables for the content-digestion pipeline: provider call limits, chunking
budget, queue concurrency and retry policy, progress retention and
notification thresholds.

All settings can be overridden via environment variables with the DIGESTION_
prefix (e.g. DIGESTION_PREFETCH_COUNT=5).

Usage:
    from digestion.config.processing import digestion_settings

    budget = digestion_settings.MAX_TOKENS_PER_CHUNK
    delays = digestion_settings.RETRY_BACKOFF_MS
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class DigestionSettings(BaseSettings):
    """
    Digestion pipeline configuration.

    Attributes are grouped by category:
    - LLM call parameters
    - Chunking budget
    - Job queue and retry policy
    - Progress tracking retention
    - Notification thresholds
    """

    # =========================================================================
    # LLM CALL PARAMETERS
    # =========================================================================

    # Per-call timeout. Worst case per chunk is twice this (primary + fallback).
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Balance creativity and consistency
    LLM_TEMPERATURE: float = 0.7

    # Summaries are short, cap the output
    LLM_MAX_TOKENS: int = 500

    # Optional model override; empty means settings.TEXT_MODEL
    LLM_MODEL: str = ""

    # =========================================================================
    # CHUNKING
    # =========================================================================

    # Model used to pick the tiktoken encoding
    TOKENIZER_MODEL: str = "gpt-4o-mini"

    # Chars per token when the tokenizer is unavailable
    CHARS_PER_TOKEN: int = 4

    MAX_TOKENS_PER_CHUNK: int = 4000
    OVERLAP_TOKENS: int = 200

    # Merge limits
    MAX_IDEAS: int = 10
    MAX_TODOS: int = 10
    MAX_SUMMARY_SENTENCES: int = 3
    IDEA_SIMILARITY_THRESHOLD: float = 0.8

    # Chunk count above which merged confidence is downgraded to medium
    CONFIDENCE_DOWNGRADE_CHUNKS: int = 3

    # =========================================================================
    # JOB QUEUE
    # =========================================================================

    # Max concurrent jobs per worker
    PREFETCH_COUNT: int = 3

    # Backoff delay indexed by retry count; its length is the retry limit
    RETRY_BACKOFF_MS: list[int] = [5000, 15000, 45000]

    # Queue depth above which producers should throttle
    OVERLOAD_THRESHOLD: int = 100

    # Worker poll interval when the queue is empty or saturated
    POLL_INTERVAL_SECONDS: float = 0.5

    # "memory" (single process) or "redis" (shared, restart-durable)
    QUEUE_BACKEND: str = "memory"

    # "local" runs the in-process worker, "celery" publishes to the broker
    DISPATCH_MODE: str = "local"

    # Redis key prefix for the durable queue
    QUEUE_KEY_PREFIX: str = "digestion:queue"

    # AMQP topology for the Celery dispatch mode
    BROKER_QUEUE: str = "digestion-jobs"
    BROKER_EXCHANGE: str = "digestion"
    BROKER_ROUTING_KEY: str = "digestion.job.queued"
    BROKER_DLX: str = "digestion-dlx"
    BROKER_DLQ: str = "digestion-failed"
    BROKER_DLQ_ROUTING_KEY: str = "digestion.failed"
    BROKER_MAX_PRIORITY: int = 10
    BROKER_PRIORITY_HIGH: int = 10
    BROKER_PRIORITY_NORMAL: int = 5

    # =========================================================================
    # PROGRESS TRACKING
    # =========================================================================

    # "memory" or "redis"
    PROGRESS_BACKEND: str = "memory"

    # Terminal jobs are kept this long before removal
    PROGRESS_RETENTION_SECONDS: int = 300

    # Active jobs expire after this long in Redis (abandoned workers)
    PROGRESS_ACTIVE_TTL_SECONDS: int = 600

    PROGRESS_KEY_PREFIX: str = "progress"

    # How often the maintenance scheduler sweeps the local store
    PROGRESS_SWEEP_INTERVAL_SECONDS: int = 60

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    STILL_PROCESSING_THRESHOLD_MS: int = 10000
    STILL_PROCESSING_INTERVAL_MS: int = 10000
    TIMEOUT_WARNING_THRESHOLD_MS: int = 30000

    # Used for queue ETA estimates
    AVG_JOB_DURATION_MS: int = 20000

    # How often active jobs are scanned for notification thresholds
    NOTIFICATION_SCAN_INTERVAL_SECONDS: int = 5

    # Latency samples kept for the average latency metric
    MAX_LATENCY_SAMPLES: int = 100

    class Config:
        env_prefix = "DIGESTION_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_digestion_settings() -> DigestionSettings:
    """Get cached digestion settings instance."""
    return DigestionSettings()


# Convenience instance
digestion_settings = get_digestion_settings()
