"""
Strict Base Models for API Request/Response Validation

Request bodies reject unknown fields so client/server contract drift fails
fast with a 422; response bodies ignore extras.

The digestion API speaks camelCase on the wire (captureId, userId) to match
the job payload, so both bases generate camelCase aliases and still accept
snake_case field names.

Usage:
    class JobSubmission(StrictRequest):
        capture_id: str

    JobSubmission.model_validate({"captureId": "cap-1"})
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StrictRequest(BaseModel):
    """
    Base model for API request bodies with strict validation.

    Features:
        - extra="forbid": Unknown fields raise 422 Unprocessable Entity
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
        - camelCase aliases, snake_case names still accepted
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class StrictResponse(BaseModel):
    """
    Base model for API response bodies.

    Features:
        - extra="ignore": Silently ignores extra fields
        - from_attributes=True: Allows ORM model conversion
        - camelCase aliases (serialize with by_alias)
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ErrorDetail(StrictResponse):
    """
    Standardized error response detail.

    Matches the error format from the error_handling middleware.
    """

    error: str  # Error code (e.g., "duplicate_job")
    message: str  # Human-readable message
    error_id: str  # Correlation ID for log lookup
    details: Optional[dict] = None
    timestamp: datetime


class SuccessResponse(StrictResponse):
    """Simple success response for operations without complex output."""

    success: bool = True
    message: str
