"""
Digestion Result Persistence

Writes a digestion result as one thought with its ideas and todos in a
single transaction and marks the capture digested. Either everything is
committed or nothing is: a failure rolls the session back and surfaces as
TransientInfraError so the job is retried.

Saving is idempotent per capture: if a thought already exists for the
capture (a previous attempt committed but was not acknowledged), its ID is
returned and nothing new is written.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from digestion.db.base import get_session_maker
from digestion.db.models import Capture, Idea, Thought
from digestion.db.models import Todo as TodoRecord
from digestion.models.digestion import ChunkingResult
from digestion.models.jobs import DigestionJob
from digestion.services.digestion.errors import TransientInfraError

logger = logging.getLogger(__name__)


class PersistenceGateway(ABC):
    """Atomic storage for digestion results."""

    @abstractmethod
    async def save_digestion(self, job: DigestionJob, result: ChunkingResult) -> str:
        """Persist the result; returns the thought ID."""


class SqlPersistenceGateway(PersistenceGateway):
    """SQLAlchemy implementation writing thoughts, ideas and todos."""

    def __init__(
        self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None
    ):
        self._session_maker = session_maker

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_session_maker()
        return self._session_maker

    async def save_digestion(self, job: DigestionJob, result: ChunkingResult) -> str:
        async with self.session_maker() as session:
            try:
                existing = await session.scalar(
                    select(Thought.id).where(Thought.capture_id == job.capture_id)
                )
                if existing is not None:
                    logger.warning(
                        f"Thought {existing} already exists for {job.capture_id}, "
                        "skipping write"
                    )
                    return existing

                thought_id = str(uuid4())
                session.add(
                    Thought(
                        id=thought_id,
                        capture_id=job.capture_id,
                        user_id=job.user_id,
                        summary=result.summary,
                        confidence=result.confidence.value,
                        confidence_score=result.confidence.score,
                        was_chunked=result.was_chunked,
                        chunk_count=result.chunk_count,
                    )
                )
                session.add_all(
                    Idea(thought_id=thought_id, content=idea, position=position)
                    for position, idea in enumerate(result.ideas)
                )
                session.add_all(
                    TodoRecord(
                        thought_id=thought_id,
                        user_id=job.user_id,
                        description=todo.description,
                        deadline=todo.deadline,
                        priority=todo.priority.value,
                    )
                    for todo in result.todos
                )
                await session.execute(
                    update(Capture)
                    .where(Capture.id == job.capture_id)
                    .values(status="digested")
                )
                await session.commit()

            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to persist digestion for {job.capture_id}: {e}")
                raise TransientInfraError("Failed to store digestion result") from e

        logger.info(
            f"Stored thought {thought_id} for {job.capture_id} "
            f"({len(result.ideas)} ideas, {len(result.todos)} todos)"
        )
        return thought_id
