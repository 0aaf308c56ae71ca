"""
Digestion Services

Provider calls, chunking and merging for turning captures into thoughts.

Usage:
    from digestion.services.digestion import ContentChunker, DigestionClient

    chunker = ContentChunker(DigestionClient())
    result = await chunker.process(content)
"""

from digestion.services.digestion.chunker import ContentChunker
from digestion.services.digestion.client import (
    DigestionClient,
    DigestionOutcome,
    ProviderFailed,
    RateLimited,
    Success,
    TimedOut,
    ValidationFailed,
)
from digestion.services.digestion.errors import (
    DigestionError,
    ExtractionFailedError,
    JobCancelledError,
    RateLimitedError,
    TimedOutError,
    TransientInfraError,
    ValidationFailedError,
)
from digestion.services.digestion.tokens import TokenCounter

__all__ = [
    "ContentChunker",
    "DigestionClient",
    "DigestionError",
    "DigestionOutcome",
    "ExtractionFailedError",
    "JobCancelledError",
    "ProviderFailed",
    "RateLimited",
    "RateLimitedError",
    "Success",
    "TimedOut",
    "TimedOutError",
    "TokenCounter",
    "TransientInfraError",
    "ValidationFailed",
    "ValidationFailedError",
]
