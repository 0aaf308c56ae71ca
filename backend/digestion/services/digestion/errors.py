"""
Digestion Failure Taxonomy

Every way a digestion attempt can fail maps to exactly one category, and the
category alone decides what the queue does with the job:

    RateLimitedError        retryable  -> nack, backoff, requeue
    TransientInfraError     retryable  -> nack, backoff, requeue
    ValidationFailedError   terminal   -> dead letter
    TimedOutError           terminal   -> dead letter
    ExtractionFailedError   terminal   -> dead letter
    JobCancelledError       consumed   -> ack, no dead letter

The message attached to an error is for logs. Users only ever see the
category-level text from user_message().

Usage:
    from digestion.services.digestion.errors import RateLimitedError

    raise RateLimitedError("Provider rate limit hit")
"""

from digestion.enums import FailureCategory
from digestion.middleware.error_handling import ServiceError


CATEGORY_MESSAGES: dict[FailureCategory, str] = {
    FailureCategory.RATE_LIMITED: "The AI provider is busy. Digestion will be retried.",
    FailureCategory.VALIDATION_FAILED: "The AI response could not be understood.",
    FailureCategory.TIMED_OUT: "Digestion took too long and was stopped.",
    FailureCategory.TRANSIENT_INFRA: "A temporary problem interrupted digestion.",
    FailureCategory.EXTRACTION_FAILED: "There was no content to digest.",
    FailureCategory.CANCELLED: "Digestion was cancelled.",
}


def user_message(category: FailureCategory) -> str:
    """Category-level message safe to show to users."""
    return CATEGORY_MESSAGES[category]


class DigestionError(ServiceError):
    """Base class for digestion failures."""

    category: FailureCategory = FailureCategory.TRANSIENT_INFRA
    retryable: bool = False


class RateLimitedError(DigestionError):
    """Provider throttled the call. Never answered by the fallback path."""

    status_code = 429
    error_code = "rate_limited"
    category = FailureCategory.RATE_LIMITED
    retryable = True


class TransientInfraError(DigestionError):
    """Storage, broker or provider failure expected to clear on its own."""

    status_code = 503
    error_code = "transient_infra"
    category = FailureCategory.TRANSIENT_INFRA
    retryable = True


class ValidationFailedError(DigestionError):
    """Provider answered with malformed JSON or a schema violation."""

    status_code = 502
    error_code = "validation_failed"
    category = FailureCategory.VALIDATION_FAILED


class TimedOutError(DigestionError):
    """Provider did not answer in time and the fallback failed too."""

    status_code = 504
    error_code = "timed_out"
    category = FailureCategory.TIMED_OUT


class ExtractionFailedError(DigestionError):
    """Capture is missing or has no digestible content."""

    status_code = 422
    error_code = "extraction_failed"
    category = FailureCategory.EXTRACTION_FAILED


class JobCancelledError(DigestionError):
    """Job was cancelled while in flight."""

    status_code = 409
    error_code = "cancelled"
    category = FailureCategory.CANCELLED
