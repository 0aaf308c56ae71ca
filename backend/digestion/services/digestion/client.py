"""
Digestion Client

Turns one piece of content into a validated DigestionResponse with a single
provider call, falling back to a plain-text call when the structured call
fails for reasons other than rate limiting or a malformed answer.

Every call resolves to a tagged outcome rather than raising, so callers can
branch on the failure kind:

    Success(response, used_fallback)
    RateLimited(detail)       provider throttled; never answered by fallback
    ValidationFailed(detail)  primary answer was not JSON or broke the schema
    TimedOut(detail)          primary timed out and the fallback failed too
    ProviderFailed(detail)    primary and fallback both failed otherwise

Each outcome has unwrap(), which returns the response or raises the matching
DigestionError for code that prefers exceptions.

Usage:
    from digestion.services.digestion.client import DigestionClient, Success

    client = DigestionClient()
    outcome = await client.digest("Call mom about Sunday lunch")
    if isinstance(outcome, Success):
        print(outcome.response.summary)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

import litellm
from pydantic import ValidationError

from digestion.config.processing import DigestionSettings, digestion_settings
from digestion.enums import Confidence, ContentType
from digestion.models.digestion import DigestionResponse
from digestion.services.digestion.errors import (
    RateLimitedError,
    TimedOutError,
    TransientInfraError,
    ValidationFailedError,
)
from digestion.services.digestion.prompts import (
    DIGESTION_SYSTEM_PROMPT,
    FALLBACK_SYSTEM_PROMPT,
    build_digestion_prompt,
    build_fallback_prompt,
)
from digestion.services.llm import LLMClient, build_messages, get_llm_client
from digestion.utils.text_utils import preview, truncate_text

logger = logging.getLogger(__name__)

FALLBACK_PADDING = " (Limited content available for analysis)"
FALLBACK_IDEA_PLACEHOLDER = "Limited insight extraction from minimal content"
MIN_SUMMARY_LENGTH = 10
MAX_SUMMARY_LENGTH = 500
MIN_IDEA_LENGTH = 5
MAX_IDEA_LENGTH = 200


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Success:
    response: DigestionResponse
    used_fallback: bool = False

    def unwrap(self) -> DigestionResponse:
        return self.response


@dataclass(frozen=True)
class RateLimited:
    detail: str

    def unwrap(self) -> DigestionResponse:
        raise RateLimitedError(self.detail)


@dataclass(frozen=True)
class ValidationFailed:
    detail: str

    def unwrap(self) -> DigestionResponse:
        raise ValidationFailedError(self.detail)


@dataclass(frozen=True)
class TimedOut:
    detail: str

    def unwrap(self) -> DigestionResponse:
        raise TimedOutError(self.detail)


@dataclass(frozen=True)
class ProviderFailed:
    detail: str

    def unwrap(self) -> DigestionResponse:
        raise TransientInfraError(self.detail)


DigestionOutcome = Union[
    Success, RateLimited, ValidationFailed, TimedOut, ProviderFailed
]


def is_rate_limit_error(error: BaseException) -> bool:
    return isinstance(error, litellm.RateLimitError)


def is_timeout_error(error: BaseException) -> bool:
    return isinstance(error, (asyncio.TimeoutError, litellm.Timeout))


# =============================================================================
# Fallback Parsing
# =============================================================================


def build_fallback_response(text: Optional[str]) -> DigestionResponse:
    """
    Build a low-confidence response from a plain-text summary.

    The summary is padded when shorter than 10 characters and truncated to
    500. The single idea is the first sentence, or a fixed placeholder when
    that sentence is too short to be an idea.

    Raises:
        ValueError: If the provider returned no text at all
    """
    summary = (text or "").strip()
    if not summary:
        raise ValueError("No message content in fallback response")

    padded = summary
    if len(summary) < MIN_SUMMARY_LENGTH:
        padded = summary + FALLBACK_PADDING

    first_sentence = summary.split(".")[0].strip() + "."
    if len(first_sentence) >= MIN_IDEA_LENGTH:
        idea = truncate_text(first_sentence, MAX_IDEA_LENGTH)
    else:
        idea = FALLBACK_IDEA_PLACEHOLDER

    return DigestionResponse(
        summary=truncate_text(padded, MAX_SUMMARY_LENGTH),
        ideas=[idea],
        todos=[],
        confidence=Confidence.LOW,
    )


# =============================================================================
# Client
# =============================================================================


class DigestionClient:
    """
    Single-call digestion against the configured LLM provider.

    Args:
        llm: LLM client, defaults to the shared singleton
        config: Digestion settings (timeout, temperature, output cap)
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        config: Optional[DigestionSettings] = None,
    ):
        self._llm = llm
        self.config = config or digestion_settings

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = get_llm_client()
        return self._llm

    def _model(self) -> Optional[str]:
        return self.config.LLM_MODEL or None

    async def digest(
        self,
        content: str,
        content_type: ContentType = ContentType.TEXT,
        capture_id: Optional[str] = None,
    ) -> DigestionOutcome:
        """
        Digest content with the structured prompt, falling back to plain text.

        Args:
            content: Text to digest
            content_type: text or audio_transcribed (shapes the prompt)
            capture_id: For log correlation and usage attribution

        Returns:
            A DigestionOutcome; this method does not raise for provider errors
        """
        logger.info(
            f"Digesting {content_type.value} content for {capture_id}: "
            f"{preview(content)}"
        )

        try:
            response = await self._digest_primary(content, content_type, capture_id)
            return Success(response=response)

        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(
                f"Primary response for {capture_id} failed validation: "
                f"{type(e).__name__}"
            )
            return ValidationFailed(
                detail=f"Malformed provider response: {type(e).__name__}"
            )

        except Exception as e:
            if is_rate_limit_error(e):
                logger.warning(f"Rate limited digesting {capture_id}")
                return RateLimited(detail="Provider rate limit exceeded")

            primary_timed_out = is_timeout_error(e)
            primary_error = "timeout" if primary_timed_out else type(e).__name__
            logger.warning(
                f"Primary prompt failed for {capture_id} ({primary_error}), "
                "trying fallback prompt"
            )

        try:
            response = await self._digest_fallback(content, content_type, capture_id)
            logger.info(f"Fallback response accepted for {capture_id}")
            return Success(response=response, used_fallback=True)

        except Exception as fallback_error:
            logger.error(
                f"Primary and fallback prompts failed for {capture_id}. "
                f"Primary: {primary_error}, fallback: {type(fallback_error).__name__}"
            )
            if is_rate_limit_error(fallback_error):
                return RateLimited(detail="Provider rate limit exceeded")
            if primary_timed_out:
                return TimedOut(
                    detail="Provider did not respond within "
                    f"{self.config.LLM_TIMEOUT_SECONDS}s"
                )
            return ProviderFailed(
                detail=f"Provider error: {primary_error}, "
                f"fallback: {type(fallback_error).__name__}"
            )

    async def _digest_primary(
        self, content: str, content_type: ContentType, capture_id: Optional[str]
    ) -> DigestionResponse:
        data, _ = await self.llm.complete(
            messages=build_messages(
                build_digestion_prompt(content, content_type),
                system_prompt=DIGESTION_SYSTEM_PROMPT,
            ),
            temperature=self.config.LLM_TEMPERATURE,
            max_tokens=self.config.LLM_MAX_TOKENS,
            json_mode=True,
            timeout=self.config.LLM_TIMEOUT_SECONDS,
            model=self._model(),
            capture_id=capture_id,
        )
        return DigestionResponse.model_validate(data)

    async def _digest_fallback(
        self, content: str, content_type: ContentType, capture_id: Optional[str]
    ) -> DigestionResponse:
        text, _ = await self.llm.complete(
            messages=build_messages(
                build_fallback_prompt(content, content_type),
                system_prompt=FALLBACK_SYSTEM_PROMPT,
            ),
            temperature=self.config.LLM_TEMPERATURE,
            max_tokens=self.config.LLM_MAX_TOKENS,
            json_mode=False,
            timeout=self.config.LLM_TIMEOUT_SECONDS,
            model=self._model(),
            capture_id=capture_id,
        )
        return build_fallback_response(text)
