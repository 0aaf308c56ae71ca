"""
Text Processing Utilities

Small helpers for normalizing, truncating and splitting text, shared by the
digestion client, the merge step and log formatting.

Usage:
    from digestion.utils.text_utils import truncate_text, preview

    summary = truncate_text(summary, 500)
    logger.info(f"Digesting: {preview(content)}")
"""

import re

SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")


def clean_text(text: str) -> str:
    """
    Clean and normalize captured text.

    - Removes null characters
    - Normalizes line endings
    - Removes excessive blank lines
    - Strips leading/trailing whitespace

    Args:
        text: Raw text to clean

    Returns:
        Cleaned text
    """
    if not text:
        return ""

    text = text.replace("\x00", "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace to a single space and strip."""
    return re.sub(r"\s+", " ", text).strip()


def normalize_for_comparison(text: str) -> str:
    """Lowercase, trimmed, whitespace-collapsed form used for deduplication."""
    return normalize_whitespace(text).lower()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length, adding suffix if truncated.

    Tries to break at word boundaries when possible.

    Args:
        text: Text to truncate
        max_length: Maximum length (including suffix)
        suffix: String to append if truncated

    Returns:
        Truncated text
    """
    if not text or len(text) <= max_length:
        return text

    target_length = max_length - len(suffix)

    if target_length <= 0:
        return suffix[:max_length]

    truncated = text[:target_length]

    # Only break at a word if it doesn't throw away too much
    last_space = truncated.rfind(" ")
    if last_space > target_length * 0.7:
        truncated = truncated[:last_space]

    return truncated + suffix


def preview(text: str, max_length: int = 50) -> str:
    """Single-line preview of text for log messages."""
    return truncate_text(normalize_whitespace(text or ""), max_length)


def split_sentences(text: str) -> list[str]:
    """Split text on sentence terminators, dropping empty fragments."""
    return [s.strip() for s in SENTENCE_SPLIT_PATTERN.split(text) if s.strip()]
