"""
Digestion Output Models (Pydantic)

Schema for what the language model must return for one piece of content,
and for the merged result of a (possibly chunked) digestion.

Validation is mandatory on every provider response before it is used:
the primary JSON response is parsed straight into DigestionResponse, and the
fallback plain-text path builds one and validates it the same way.

Models:
- Todo: An actionable task detected in the content
- DigestionResponse: Summary, ideas, todos and confidence for one call
- ChunkingResult: DigestionResponse plus chunking metadata

Usage:
    from digestion.models.digestion import DigestionResponse

    response = DigestionResponse.model_validate(parsed_json)
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from digestion.enums import Confidence, TodoPriority


def _require_non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class Todo(BaseModel):
    """
    Actionable task extracted from content.

    Attributes:
        description: What the user needs to do (3-200 chars)
        deadline: Deadline as phrased by the user ("Friday", "tomorrow"), if any
        priority: Inferred priority
    """

    description: str = Field(..., min_length=3, max_length=200)
    deadline: Optional[str] = Field(default=None, max_length=50)
    priority: TodoPriority = TodoPriority.MEDIUM

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        return _require_non_blank(v)


class DigestionResponse(BaseModel):
    """
    Validated digestion of a single piece of content.

    Attributes:
        summary: 10-500 chars, non-blank
        ideas: 1-10 key ideas, 5-200 chars each, non-blank
        todos: 0-10 todos
        confidence: Provider confidence, defaults to high
    """

    summary: str = Field(..., min_length=10, max_length=500)
    ideas: list[str] = Field(..., min_length=1, max_length=10)
    todos: list[Todo] = Field(default_factory=list, max_length=10)
    confidence: Confidence = Confidence.HIGH

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        return _require_non_blank(v)

    @field_validator("ideas")
    @classmethod
    def ideas_well_formed(cls, v: list[str]) -> list[str]:
        for idea in v:
            if len(idea) < 5 or len(idea) > 200:
                raise ValueError("each idea must be 5-200 characters")
            _require_non_blank(idea)
        return v


class ChunkingResult(DigestionResponse):
    """
    Digestion result after the chunking decision.

    Attributes:
        was_chunked: Whether the content was split into several provider calls
        chunk_count: Number of chunks processed (only set when chunked)
    """

    was_chunked: bool = False
    chunk_count: Optional[int] = None
