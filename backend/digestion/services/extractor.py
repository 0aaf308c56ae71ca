"""
Content Extraction

Loads the raw text to digest for a capture: the typed content for text
captures, the transcription for audio captures. Content is trimmed; missing,
empty or whitespace-only content is an ExtractionFailedError (terminal, the
job is not retried). Database errors are TransientInfraError (retried).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from digestion.db.base import get_session_maker
from digestion.db.models import Capture
from digestion.enums import ContentType
from digestion.services.digestion.errors import (
    ExtractionFailedError,
    TransientInfraError,
)
from digestion.utils.text_utils import clean_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedContent:
    content: str
    content_type: ContentType


def normalize_content(
    raw: Optional[str], content_type: ContentType, capture_id: str
) -> ExtractedContent:
    """
    Validate and trim extracted content.

    Raises:
        ExtractionFailedError: If content is missing, empty or whitespace-only
    """
    if raw is None:
        what = (
            "No transcription"
            if content_type == ContentType.AUDIO_TRANSCRIBED
            else "No content"
        )
        raise ExtractionFailedError(f"{what} for capture {capture_id}")

    content = clean_text(raw)
    if not content:
        raise ExtractionFailedError(f"Empty content for capture {capture_id}")

    return ExtractedContent(content=content, content_type=content_type)


class ContentExtractor(ABC):
    """Source of the content to digest for a capture."""

    @abstractmethod
    async def extract(self, capture_id: str) -> ExtractedContent:
        """Return trimmed, non-empty content and its type."""


class SqlContentExtractor(ContentExtractor):
    """Reads captures from PostgreSQL."""

    def __init__(
        self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None
    ):
        self._session_maker = session_maker

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            self._session_maker = get_session_maker()
        return self._session_maker

    async def extract(self, capture_id: str) -> ExtractedContent:
        try:
            async with self.session_maker() as session:
                capture = await session.get(Capture, capture_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load capture {capture_id}: {e}")
            raise TransientInfraError("Capture storage unavailable") from e

        if capture is None:
            raise ExtractionFailedError(f"Capture {capture_id} not found")

        try:
            content_type = ContentType(capture.content_type)
        except ValueError:
            raise ExtractionFailedError(
                f"Unsupported content type {capture.content_type!r} for {capture_id}"
            )

        raw = (
            capture.transcription
            if content_type == ContentType.AUDIO_TRANSCRIBED
            else capture.raw_content
        )
        extracted = normalize_content(raw, content_type, capture_id)
        logger.debug(
            f"Extracted {len(extracted.content)} chars of {content_type.value} "
            f"from {capture_id}"
        )
        return extracted
