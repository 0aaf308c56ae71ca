"""
Middleware Package

Provides FastAPI error handling middleware and the base service exceptions.
"""

from digestion.middleware.error_handling import (
    ConflictError,
    ErrorHandlingMiddleware,
    NotFoundError,
    ServiceError,
    ServiceUnavailableError,
    setup_error_handling,
)

__all__ = [
    "ConflictError",
    "ErrorHandlingMiddleware",
    "NotFoundError",
    "ServiceError",
    "ServiceUnavailableError",
    "setup_error_handling",
]
