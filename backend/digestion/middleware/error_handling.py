"""
Error Handling Middleware

Provides consistent error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses (internal details only in debug mode)
- Base exception classes for service errors

Usage:
    from digestion.middleware.error_handling import setup_error_handling, ServiceError

    setup_error_handling(app, debug=settings.DEBUG)

    raise ServiceError("Something went wrong", status_code=500)

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions -> structured JSON response
    - Exception: Catch-all for unexpected errors -> sanitized response
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Redis unavailable", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class NotFoundError(ServiceError):
    """Raised when a requested resource doesn't exist."""

    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Raised when a request conflicts with current state."""

    status_code = 409
    error_code = "conflict"


class ServiceUnavailableError(ServiceError):
    """Raised when the service is temporarily unable to accept work."""

    status_code = 503
    error_code = "service_unavailable"


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _error_body(error_id: str, error: ServiceError, debug: bool) -> dict:
    return {
        "error": error.error_code,
        "message": error.message,
        "error_id": error_id,
        "details": error.details if debug else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details unless debug is enabled
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=e.status_code, content=_error_body(error_id, e, self.debug)
            )

        except Exception as e:
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            content = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "error_id": error_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            if self.debug:
                content["details"] = {
                    "exception": type(e).__name__,
                    "message": str(e),
                }

            return JSONResponse(status_code=500, content=content)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Exception handler for ServiceError raised inside route handlers."""
    error_id = str(uuid4())[:8]
    debug = getattr(request.app.state, "debug", False)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[{error_id}] {exc.error_code}: {exc.message} ({request.url.path})")

    return JSONResponse(
        status_code=exc.status_code, content=_error_body(error_id, exc, debug)
    )


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include error details in responses
    """
    app.state.debug = debug
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
