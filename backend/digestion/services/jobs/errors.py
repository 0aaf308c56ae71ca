"""Job submission errors surfaced through the API."""

from digestion.middleware.error_handling import ConflictError, ServiceUnavailableError


class DuplicateJobError(ConflictError):
    """A job for this capture is already queued, in flight or awaiting retry."""

    error_code = "duplicate_job"


class QueueOverloadedError(ServiceUnavailableError):
    """Queue depth is past the overload threshold."""

    error_code = "queue_overloaded"
