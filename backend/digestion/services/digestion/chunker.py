"""
Content Chunker

Decides between a single digestion call and a chunked digestion, drives the
digestion client once per window and merges the results.

Content within the per-chunk token budget goes through one call and comes
back with was_chunked=False. Longer content is cut into
ceil(tokens / budget) overlapping windows that are digested one after the
other; any window failing aborts the whole digestion, so a partial merge is
never produced.

Usage:
    from digestion.services.digestion.chunker import ContentChunker

    chunker = ContentChunker(DigestionClient())
    result = await chunker.process(content, ContentType.TEXT, capture_id="cap-1")
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.enums import ContentType
from digestion.models.digestion import ChunkingResult, DigestionResponse
from digestion.services.digestion.client import DigestionClient
from digestion.services.digestion.errors import JobCancelledError
from digestion.services.digestion.merge import merge_chunk_results
from digestion.services.digestion.tokens import TokenCounter

logger = logging.getLogger(__name__)

# Called as on_chunk(completed_chunks, total_chunks) after each window
ChunkProgressCallback = Callable[[int, int], Awaitable[None]]
AbortCheck = Callable[[], bool]


class ContentChunker:
    """
    Token-budgeted digestion with overlap.

    Args:
        client: Digestion client used for every window
        counter: Token counter, defaults to tiktoken for the configured model
        config: Budget, overlap and merge settings
    """

    def __init__(
        self,
        client: DigestionClient,
        counter: Optional[TokenCounter] = None,
        config: Optional[DigestionSettings] = None,
    ):
        self.client = client
        self.config = config or digestion_settings
        self.counter = counter or TokenCounter(
            model=self.config.TOKENIZER_MODEL,
            chars_per_token=self.config.CHARS_PER_TOKEN,
        )

    def chunk_count(self, content: str) -> int:
        """Number of provider calls needed for this content (at least 1)."""
        tokens = self.counter.count(content)
        return max(1, -(-tokens // self.config.MAX_TOKENS_PER_CHUNK))

    def split(self, content: str) -> list[str]:
        """Overlapping windows for content, one per chunk."""
        return self.counter.windows(
            content,
            budget=self.config.MAX_TOKENS_PER_CHUNK,
            overlap=self.config.OVERLAP_TOKENS,
        )

    async def process(
        self,
        content: str,
        content_type: ContentType = ContentType.TEXT,
        capture_id: Optional[str] = None,
        on_chunk: Optional[ChunkProgressCallback] = None,
        should_abort: Optional[AbortCheck] = None,
    ) -> ChunkingResult:
        """
        Digest content, chunking when it exceeds the token budget.

        Args:
            content: Extracted text
            content_type: Shapes the prompt
            capture_id: For log correlation
            on_chunk: Awaited after each finished window
            should_abort: Checked before each window; True cancels the job

        Returns:
            ChunkingResult (merged when chunked)

        Raises:
            DigestionError: The first failing window's mapped error
            JobCancelledError: If should_abort returned True
        """
        token_count = self.counter.count(content)
        budget = self.config.MAX_TOKENS_PER_CHUNK

        logger.info(
            f"Content size for {capture_id}: {token_count} tokens, {len(content)} chars"
        )

        if token_count <= budget:
            self._check_abort(should_abort, capture_id)
            outcome = await self.client.digest(content, content_type, capture_id)
            response = outcome.unwrap()
            if on_chunk:
                await on_chunk(1, 1)
            return ChunkingResult(**response.model_dump(), was_chunked=False)

        windows = self.split(content)
        if len(windows) > 2:
            logger.warning(
                f"{len(windows)} chunks for {capture_id}, "
                "digestion may take longer than usual"
            )
        else:
            logger.info(f"Content for {capture_id} split into {len(windows)} chunks")

        results: list[DigestionResponse] = []
        for index, window in enumerate(windows, start=1):
            self._check_abort(should_abort, capture_id)
            logger.info(f"Processing chunk {index}/{len(windows)} for {capture_id}")

            outcome = await self.client.digest(window, content_type, capture_id)
            results.append(outcome.unwrap())

            if on_chunk:
                await on_chunk(index, len(windows))

        merged = merge_chunk_results(results, self.config)
        logger.info(
            f"Merged {merged.chunk_count} chunks for {capture_id}: "
            f"{len(merged.ideas)} ideas, {len(merged.todos)} todos"
        )
        return merged

    @staticmethod
    def _check_abort(should_abort: Optional[AbortCheck], capture_id: Optional[str]):
        if should_abort and should_abort():
            raise JobCancelledError(f"Digestion of {capture_id} was cancelled")
