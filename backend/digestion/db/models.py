"""
SQLAlchemy Database Models

Tables touched by digestion. Captures are written by the capture service and
only read here; thoughts, ideas and todos are written atomically once per
successful digestion.

Tables:
- captures: Raw content submitted by users
- thoughts: One digested summary per capture
- ideas: Key ideas belonging to a thought
- todos: Actionable tasks belonging to a thought
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from digestion.db.base import Base


def _uuid() -> str:
    return str(uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Capture(Base):
    """
    A raw user capture (typed text or a transcribed voice note).

    raw_content holds the typed text; transcription holds the speech-to-text
    output for audio captures.
    """

    __tablename__ = "captures"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    content_type: Mapped[str] = mapped_column(String(32), default="text")
    raw_content: Mapped[Optional[str]] = mapped_column(Text)
    transcription: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), default="pending")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    thought: Mapped[Optional["Thought"]] = relationship(back_populates="capture")


class Thought(Base):
    """Digested form of a capture: summary plus confidence."""

    __tablename__ = "thoughts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    capture_id: Mapped[str] = mapped_column(
        ForeignKey("captures.id", ondelete="CASCADE"), unique=True
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)

    summary: Mapped[str] = mapped_column(Text)
    confidence: Mapped[str] = mapped_column(String(16))
    confidence_score: Mapped[float] = mapped_column(Float)
    was_chunked: Mapped[bool] = mapped_column(Boolean, default=False)
    chunk_count: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    capture: Mapped["Capture"] = relationship(back_populates="thought")
    ideas: Mapped[List["Idea"]] = relationship(
        back_populates="thought", cascade="all, delete-orphan"
    )
    todos: Mapped[List["Todo"]] = relationship(
        back_populates="thought", cascade="all, delete-orphan"
    )


class Idea(Base):
    """A key idea extracted from a thought."""

    __tablename__ = "ideas"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    thought_id: Mapped[str] = mapped_column(
        ForeignKey("thoughts.id", ondelete="CASCADE"), index=True
    )
    content: Mapped[str] = mapped_column(String(200))
    position: Mapped[int] = mapped_column(Integer, default=0)

    thought: Mapped["Thought"] = relationship(back_populates="ideas")


class Todo(Base):
    """An actionable task extracted from a thought."""

    __tablename__ = "todos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    thought_id: Mapped[str] = mapped_column(
        ForeignKey("thoughts.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    description: Mapped[str] = mapped_column(String(200))
    deadline: Mapped[Optional[str]] = mapped_column(String(50))
    priority: Mapped[str] = mapped_column(String(16), default="medium")
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    thought: Mapped["Thought"] = relationship(back_populates="todos")
