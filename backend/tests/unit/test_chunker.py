"""
Unit Tests for Token Counting and the Content Chunker

The tokenizer is disabled (character estimate at 4 chars/token) so results
do not depend on tiktoken encoding downloads.

These tests verify:
- Token estimate and window layout with overlap
- Single call for content within budget
- Chunk count, sequential processing and merging for long content
- Progress callbacks and cooperative abort
- Any chunk failure aborts the job
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from digestion.enums import Confidence
from digestion.services.digestion import (
    ContentChunker,
    JobCancelledError,
    RateLimited,
    RateLimitedError,
    Success,
    TokenCounter,
)
from digestion.services.digestion.tokens import DEFAULT_ENCODING
from tests.conftest import make_response


@pytest.fixture
def counter() -> TokenCounter:
    return TokenCounter(use_tokenizer=False)


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.digest = AsyncMock(return_value=Success(response=make_response()))
    return mock


@pytest.fixture
def chunker(client, counter, digestion_config) -> ContentChunker:
    return ContentChunker(client, counter=counter, config=digestion_config)


class TestTokenCounter:
    """Tests for the character-based estimate and windowing."""

    def test_estimate_rounds_up(self, counter) -> None:
        assert counter.uses_tokenizer is False
        assert counter.count("") == 0
        assert counter.count("abcd") == 1
        assert counter.count("abcde") == 2

    def test_window_count_matches_token_count(self, counter) -> None:
        text = "x" * (4 * 9000)  # 9000 tokens

        windows = counter.windows(text, budget=4000, overlap=200)

        assert len(windows) == 3

    def test_windows_overlap(self, counter) -> None:
        text = "".join(str(i % 10) for i in range(4 * 5000))

        first, second = counter.windows(text, budget=4000, overlap=200)

        assert len(first) == 16000
        # Second window starts 200 tokens (800 chars) before the budget boundary
        assert second == text[16000 - 800 :]
        assert first.endswith(second[:800])

    def test_no_windows_for_empty_text(self, counter) -> None:
        assert counter.windows("", budget=4000, overlap=200) == []


class TestTokenizerLoading:
    """Tests for the tiktoken path and its fallback to the estimate."""

    def test_unknown_model_and_missing_encoding_fall_back(self) -> None:
        counter = TokenCounter(model="not-a-model")

        with patch(
            "tiktoken.encoding_for_model", side_effect=KeyError("not-a-model")
        ), patch("tiktoken.get_encoding", side_effect=OSError("offline")):
            assert counter.count("abcdefghi") == 3

        assert counter.uses_tokenizer is False
        assert len(counter.windows("x" * 40, budget=4, overlap=0)) == 3

    def test_download_failure_falls_back(self) -> None:
        counter = TokenCounter()

        with patch("tiktoken.encoding_for_model", side_effect=OSError("offline")):
            assert counter.count("abcde") == 2

    def test_unknown_model_uses_default_encoding(self) -> None:
        encoding = MagicMock()
        encoding.encode.return_value = [1, 2, 3]

        with patch(
            "tiktoken.encoding_for_model", side_effect=KeyError("custom")
        ), patch("tiktoken.get_encoding", return_value=encoding) as get_encoding:
            assert TokenCounter(model="custom").count("hello world") == 3

        get_encoding.assert_called_once_with(DEFAULT_ENCODING)

    def test_special_token_text_is_counted(self) -> None:
        encoding = MagicMock()
        encoding.encode.return_value = [11, 12, 13, 14]
        encoding.decode.side_effect = lambda tokens: "|".join(map(str, tokens))
        text = "before <|endoftext|> after"

        with patch("tiktoken.encoding_for_model", return_value=encoding):
            counter = TokenCounter()
            assert counter.count(text) == 4
            assert counter.windows(text, budget=2, overlap=1) == ["11|12", "12|13|14"]

        for call in encoding.encode.call_args_list:
            assert call.kwargs == {"disallowed_special": ()}


class TestChunkerSingleCall:
    """Content within the budget."""

    @pytest.mark.asyncio
    async def test_short_content_single_call(self, chunker, client) -> None:
        on_chunk = AsyncMock()

        result = await chunker.process(
            "Buy milk", capture_id="cap-1", on_chunk=on_chunk
        )

        assert result.was_chunked is False
        assert result.chunk_count is None
        assert result.summary == make_response().summary
        client.digest.assert_awaited_once()
        on_chunk.assert_awaited_once_with(1, 1)

    @pytest.mark.asyncio
    async def test_exactly_at_budget_not_chunked(self, chunker, client) -> None:
        result = await chunker.process("y" * 16000)

        assert result.was_chunked is False
        assert client.digest.await_count == 1

    @pytest.mark.asyncio
    async def test_failure_raises_mapped_error(self, chunker, client) -> None:
        client.digest = AsyncMock(return_value=RateLimited(detail="slow down"))

        with pytest.raises(RateLimitedError):
            await chunker.process("Buy milk")


class TestChunkerChunked:
    """Content over the budget."""

    @pytest.mark.asyncio
    async def test_long_content_chunked(self, chunker, client) -> None:
        """'word ' x 5000 is 25000 chars, 6250 estimated tokens, two chunks."""
        client.digest = AsyncMock(
            side_effect=[
                Success(
                    response=make_response(
                        summary="Chunk one talks about words.",
                        ideas=["Words repeat a lot"],
                    )
                ),
                Success(
                    response=make_response(
                        summary="Chunk two also talks about words.",
                        ideas=["Words repeat a lot", "Repetition is boring"],
                    )
                ),
            ]
        )

        result = await chunker.process("word " * 5000, capture_id="cap-1")

        assert result.was_chunked is True
        assert result.chunk_count == 2
        assert client.digest.await_count == 2
        assert result.ideas == ["Words repeat a lot", "Repetition is boring"]
        assert len(result.summary) <= 500
        assert result.confidence == Confidence.HIGH

    @pytest.mark.asyncio
    async def test_chunk_count_is_ceiling(self, chunker, client) -> None:
        result = await chunker.process("z" * (4 * 12001))

        assert chunker.chunk_count("z" * (4 * 12001)) == 4
        assert result.chunk_count == 4
        # More than three chunks caps confidence at medium
        assert result.confidence == Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_progress_reported_per_chunk(self, chunker) -> None:
        on_chunk = AsyncMock()

        await chunker.process("word " * 5000, on_chunk=on_chunk)

        assert [c.args for c in on_chunk.await_args_list] == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_any_chunk_failure_aborts(self, chunker, client) -> None:
        client.digest = AsyncMock(
            side_effect=[
                Success(response=make_response()),
                RateLimited(detail="slow down"),
            ]
        )

        with pytest.raises(RateLimitedError):
            await chunker.process("word " * 5000)

    @pytest.mark.asyncio
    async def test_abort_between_chunks(self, chunker, client) -> None:
        calls = {"n": 0}

        def should_abort() -> bool:
            calls["n"] += 1
            return calls["n"] > 1

        with pytest.raises(JobCancelledError):
            await chunker.process("word " * 5000, should_abort=should_abort)

        assert client.digest.await_count == 1
