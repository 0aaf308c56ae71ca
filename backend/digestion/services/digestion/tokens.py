"""
Token Counting and Windowing

Counts tokens with tiktoken when an encoding for the configured model can be
loaded, and otherwise falls back to a ceil(chars / 4) estimate. The same
counter cuts content into the windows the chunker sends to the provider, so
the number of windows always equals ceil(tokens / budget). The encoding is
loaded on first use, so constructing a counter never touches the network.

Usage:
    from digestion.services.digestion.tokens import TokenCounter

    counter = TokenCounter()
    counter.count("some text")
    windows = counter.windows(long_text, budget=4000, overlap=200)
"""

import logging
import math
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "o200k_base"


class TokenCounter:
    """
    Token counter with a character-based fallback.

    Args:
        model: Model name used to pick the tiktoken encoding
        chars_per_token: Ratio used by the fallback estimate
        use_tokenizer: Set False to always use the fallback estimate
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        chars_per_token: int = 4,
        use_tokenizer: bool = True,
    ):
        self.model = model
        self.chars_per_token = chars_per_token
        self._use_tokenizer = use_tokenizer
        self._encoding: Optional[tiktoken.Encoding] = None
        self._loaded = False

    @staticmethod
    def _load_encoding(model: str) -> Optional[tiktoken.Encoding]:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            logger.info(f"No tiktoken mapping for {model}, using {DEFAULT_ENCODING}")
        except Exception as e:
            # Encoding files are downloaded on first use; offline hosts fail here
            logger.warning(f"tiktoken unavailable ({e}), estimating tokens from length")
            return None

        try:
            return tiktoken.get_encoding(DEFAULT_ENCODING)
        except Exception as e:
            logger.warning(f"tiktoken unavailable ({e}), estimating tokens from length")
            return None

    @property
    def encoding(self) -> Optional[tiktoken.Encoding]:
        """tiktoken encoding, loaded on first use; None means estimating."""
        if not self._loaded:
            if self._use_tokenizer:
                self._encoding = self._load_encoding(self.model)
            self._loaded = True
        return self._encoding

    @property
    def uses_tokenizer(self) -> bool:
        return self.encoding is not None

    def count(self, text: str) -> int:
        """Number of tokens in text (0 for empty text)."""
        if not text:
            return 0
        encoding = self.encoding
        if encoding is not None:
            return len(encoding.encode(text, disallowed_special=()))
        return math.ceil(len(text) / self.chars_per_token)

    def windows(self, text: str, budget: int, overlap: int) -> list[str]:
        """
        Cut text into ceil(count / budget) windows.

        Window i covers tokens [i*budget, (i+1)*budget) preceded by the last
        `overlap` tokens of window i-1. Without a tokenizer the same layout is
        applied over characters at chars_per_token characters per token.
        """
        total = self.count(text)
        if total == 0:
            return []

        window_count = math.ceil(total / budget)

        encoding = self.encoding
        if encoding is not None:
            tokens = encoding.encode(text, disallowed_special=())
            return [
                encoding.decode(
                    tokens[max(0, i * budget - overlap) : (i + 1) * budget]
                )
                for i in range(window_count)
            ]

        char_budget = budget * self.chars_per_token
        char_overlap = overlap * self.chars_per_token
        return [
            text[max(0, i * char_budget - char_overlap) : (i + 1) * char_budget]
            for i in range(window_count)
        ]
