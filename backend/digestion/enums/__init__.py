"""
Centralized enum definitions.

Usage:
    from digestion.enums import JobPriority, JobStatus, Confidence
"""

from digestion.enums.digestion import (
    Confidence,
    ContentType,
    EventTopic,
    FailureCategory,
    JobPriority,
    JobStatus,
    ProgressPhase,
    TodoPriority,
)

__all__ = [
    "Confidence",
    "ContentType",
    "EventTopic",
    "FailureCategory",
    "JobPriority",
    "JobStatus",
    "ProgressPhase",
    "TodoPriority",
]
