"""Pydantic models for the digestion service."""

from digestion.models.digestion import ChunkingResult, DigestionResponse, Todo
from digestion.models.events import (
    DigestionCompleted,
    DigestionFailed,
    ProgressUpdate,
    QueueMetrics,
    TimeoutWarning,
)
from digestion.models.jobs import DigestionJob, JobProgress

__all__ = [
    "ChunkingResult",
    "DigestionCompleted",
    "DigestionFailed",
    "DigestionJob",
    "DigestionResponse",
    "JobProgress",
    "ProgressUpdate",
    "QueueMetrics",
    "TimeoutWarning",
    "Todo",
]
