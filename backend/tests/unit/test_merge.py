"""
Unit Tests for Chunk Result Merging

These tests verify:
- Jaccard similarity on normalized word sets
- Summary synthesis from first sentences
- Idea deduplication (>= 0.8 inclusive) and caps
- Todo deduplication keeping the first occurrence
- Confidence merging rules
"""

import pytest

from digestion.enums import Confidence, TodoPriority
from digestion.models.digestion import Todo
from digestion.services.digestion.merge import (
    deduplicate_ideas,
    deduplicate_todos,
    jaccard_similarity,
    merge_chunk_results,
    merge_confidence,
    synthesize_summary,
)
from tests.conftest import make_response


class TestJaccard:
    def test_identical_after_normalization(self) -> None:
        assert jaccard_similarity("  Buy MILK ", "buy   milk") == 1.0

    def test_partial_overlap(self) -> None:
        # {a b c d} vs {a b c e}: 3 shared of 5
        assert jaccard_similarity("a b c d", "a b c e") == pytest.approx(0.6)

    def test_disjoint(self) -> None:
        assert jaccard_similarity("alpha beta", "gamma delta") == 0.0


class TestSummary:
    def test_single_summary_kept(self) -> None:
        assert synthesize_summary(["Only one summary here."]) == "Only one summary here."

    def test_first_sentences_joined(self) -> None:
        result = synthesize_summary(
            ["First topic. Detail.", "Second topic! More.", "Third topic? Extra."]
        )

        assert result == "First topic. Second topic. Third topic."

    def test_capped_at_three_sentences(self) -> None:
        result = synthesize_summary([f"Sentence number {i}. Tail." for i in range(5)])

        assert result.count(".") == 3

    def test_falls_back_when_too_short(self) -> None:
        result = synthesize_summary(["Hi. There is more.", "Yo. And more."])

        assert result == "Hi. There is more."

    def test_truncated_to_500(self) -> None:
        long_sentence = "word " * 150
        result = synthesize_summary([long_sentence, long_sentence])

        assert len(result) <= 500


class TestIdeas:
    def test_threshold_is_inclusive(self) -> None:
        # Five shared words of five total words in the union: 1.0; four of five: 0.8
        ideas = ["one two three four five", "one two three four five six"]
        assert jaccard_similarity(*ideas) == pytest.approx(5 / 6)

        near = ["a b c d", "a b c d e"]
        assert jaccard_similarity(*near) == pytest.approx(0.8)
        assert deduplicate_ideas(near) == ["a b c d"]

    def test_below_threshold_kept(self) -> None:
        ideas = ["a b c d", "a b c e"]

        assert deduplicate_ideas(ideas) == ideas

    def test_first_occurrence_order_and_cap(self) -> None:
        ideas = [f"distinct idea number {i} unique{i}" for i in range(15)]

        result = deduplicate_ideas(ideas, limit=10)

        assert result == ideas[:10]

    def test_no_pair_above_threshold(self) -> None:
        ideas = [
            "The quick brown fox jumps",
            "the quick brown fox  JUMPS",
            "A completely different thought",
            "quick brown fox jumps high",
        ]

        result = deduplicate_ideas(ideas)

        for i, a in enumerate(result):
            for b in result[i + 1 :]:
                assert jaccard_similarity(a, b) < 0.8


class TestTodos:
    def test_first_todo_wins(self) -> None:
        todos = [
            Todo(description="Call mom", priority=TodoPriority.HIGH),
            Todo(description="  call MOM ", priority=TodoPriority.LOW),
            Todo(description="Buy milk"),
        ]

        result = deduplicate_todos(todos)

        assert [t.description for t in result] == ["Call mom", "Buy milk"]
        assert result[0].priority == TodoPriority.HIGH

    def test_cap(self) -> None:
        todos = [Todo(description=f"Task number {i}") for i in range(12)]

        assert len(deduplicate_todos(todos, limit=10)) == 10


class TestConfidence:
    def test_any_low_is_low(self) -> None:
        confidences = [Confidence.HIGH, Confidence.LOW]
        assert merge_confidence(confidences, chunk_count=2) == Confidence.LOW

    def test_many_chunks_downgrade_to_medium(self) -> None:
        assert merge_confidence([Confidence.HIGH] * 4, chunk_count=4) == Confidence.MEDIUM

    def test_lowest_chunk_level(self) -> None:
        confidences = [Confidence.HIGH, Confidence.MEDIUM, Confidence.HIGH]
        assert merge_confidence(confidences, chunk_count=3) == Confidence.MEDIUM

    def test_all_high_few_chunks(self) -> None:
        assert merge_confidence([Confidence.HIGH] * 2, chunk_count=2) == Confidence.HIGH


class TestMergeChunkResults:
    def test_merged_result(self) -> None:
        results = [
            make_response(
                summary="Trip planning for May. Flights first.",
                ideas=["Lisbon trip in May"],
                todos=[Todo(description="Book flights")],
            ),
            make_response(
                summary="Hotel options near the river. Budget matters.",
                ideas=["Lisbon trip in May", "Stay near the river"],
                todos=[Todo(description="book flights"), Todo(description="Find hotel")],
                confidence=Confidence.MEDIUM,
            ),
        ]

        merged = merge_chunk_results(results)

        assert merged.was_chunked is True
        assert merged.chunk_count == 2
        assert merged.summary == "Trip planning for May. Hotel options near the river."
        assert merged.ideas == ["Lisbon trip in May", "Stay near the river"]
        assert [t.description for t in merged.todos] == ["Book flights", "Find hotel"]
        assert merged.confidence == Confidence.MEDIUM

    def test_empty_results_rejected(self) -> None:
        with pytest.raises(ValueError):
            merge_chunk_results([])
