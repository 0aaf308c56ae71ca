"""
Chunk Result Merging

Combines the per-chunk DigestionResponses of a chunked digestion into one
ChunkingResult:

- summary: first sentence of each chunk summary, at most 3, joined
- ideas: first-occurrence order, near-duplicates removed by word-set
  Jaccard similarity, at most 10
- todos: first occurrence of each normalized description, at most 10
- confidence: never better than the worst chunk, and medium at best once
  more than 3 chunks were needed

Usage:
    from digestion.services.digestion.merge import merge_chunk_results

    result = merge_chunk_results(chunk_responses)
"""

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.enums import Confidence
from digestion.models.digestion import ChunkingResult, DigestionResponse, Todo
from digestion.utils.text_utils import (
    normalize_for_comparison,
    split_sentences,
    truncate_text,
)

MIN_SUMMARY_LENGTH = 10
MAX_SUMMARY_LENGTH = 500


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the word sets of two normalized strings."""
    words_a = set(normalize_for_comparison(a).split())
    words_b = set(normalize_for_comparison(b).split())
    union = words_a | words_b
    if not union:
        return 1.0
    return len(words_a & words_b) / len(union)


def synthesize_summary(summaries: list[str], max_sentences: int = 3) -> str:
    """
    Join the first sentence of each summary into one summary.

    Falls back to the first summary when the synthesized text would be too
    short to be a valid summary.
    """
    if len(summaries) == 1:
        return truncate_text(summaries[0], MAX_SUMMARY_LENGTH)

    key_sentences = []
    for summary in summaries:
        sentences = split_sentences(summary)
        if sentences:
            key_sentences.append(sentences[0])

    combined = ". ".join(key_sentences[:max_sentences])
    if combined:
        combined += "."

    if len(combined.strip()) < MIN_SUMMARY_LENGTH:
        combined = summaries[0]

    return truncate_text(combined, MAX_SUMMARY_LENGTH)


def deduplicate_ideas(
    ideas: list[str], threshold: float = 0.8, limit: int = 10
) -> list[str]:
    """
    Drop ideas whose similarity to an already kept idea is >= threshold.

    Every candidate is compared against all kept ideas, so the result never
    contains a pair at or above the threshold.
    """
    kept: list[str] = []
    for idea in ideas:
        if any(jaccard_similarity(idea, existing) >= threshold for existing in kept):
            continue
        kept.append(idea)
        if len(kept) >= limit:
            break
    return kept


def deduplicate_todos(todos: list[Todo], limit: int = 10) -> list[Todo]:
    """Keep the first todo for each normalized description."""
    seen: set[str] = set()
    kept: list[Todo] = []
    for todo in todos:
        key = normalize_for_comparison(todo.description)
        if key in seen:
            continue
        seen.add(key)
        kept.append(todo)
        if len(kept) >= limit:
            break
    return kept


def merge_confidence(
    confidences: list[Confidence], chunk_count: int, downgrade_after: int = 3
) -> Confidence:
    """Worst chunk confidence, capped at medium past the chunk threshold."""
    worst = max(confidences, key=lambda c: c.level, default=Confidence.HIGH)
    if worst == Confidence.LOW:
        return Confidence.LOW
    if chunk_count > downgrade_after:
        return Confidence.MEDIUM
    return worst


def merge_chunk_results(
    results: list[DigestionResponse],
    config: DigestionSettings = digestion_settings,
) -> ChunkingResult:
    """
    Merge per-chunk responses into a single chunked result.

    Args:
        results: One response per chunk, in chunk order (at least one)
        config: Merge caps and thresholds

    Returns:
        ChunkingResult with was_chunked=True and chunk_count=len(results)
    """
    if not results:
        raise ValueError("Cannot merge an empty list of chunk results")

    chunk_count = len(results)

    summary = synthesize_summary(
        [r.summary for r in results], max_sentences=config.MAX_SUMMARY_SENTENCES
    )
    ideas = deduplicate_ideas(
        [idea for r in results for idea in r.ideas],
        threshold=config.IDEA_SIMILARITY_THRESHOLD,
        limit=config.MAX_IDEAS,
    )
    todos = deduplicate_todos(
        [todo for r in results for todo in r.todos], limit=config.MAX_TODOS
    )
    confidence = merge_confidence(
        [r.confidence for r in results],
        chunk_count,
        downgrade_after=config.CONFIDENCE_DOWNGRADE_CHUNKS,
    )

    return ChunkingResult(
        summary=summary,
        ideas=ideas,
        todos=todos,
        confidence=confidence,
        was_chunked=True,
        chunk_count=chunk_count,
    )
