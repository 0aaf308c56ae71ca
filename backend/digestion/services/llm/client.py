"""
LLM Client via LiteLLM.

LiteLLM provides a unified interface to 100+ LLM providers using
the format "provider/model-name". This client is a thin async wrapper that
adds a hard per-call timeout, optional JSON mode and usage logging.

It deliberately does not retry: a failed digestion call is either answered by
the plain-text fallback or handed back to the job queue, which owns retries
and backoff.

See: https://docs.litellm.ai/

Usage:
    from digestion.services.llm import get_llm_client, build_messages

    client = get_llm_client()
    content, usage = await client.complete(
        messages=build_messages("Summarize...", system_prompt="..."),
        json_mode=True,
        timeout=30.0,
    )
"""

import asyncio
import json
import logging
import os
import time
from typing import Any, Optional, Union

import litellm
from litellm import acompletion

from digestion.config.settings import settings
from digestion.services.llm.usage import LLMUsage, extract_usage_from_response

logger = logging.getLogger(__name__)

# Configure LiteLLM
litellm.drop_params = True  # Drop unsupported params instead of erroring
if settings.DEBUG:
    os.environ["LITELLM_LOG"] = "DEBUG"


def get_default_text_model() -> str:
    """Get the default text model from settings."""
    return settings.TEXT_MODEL


def build_messages(
    prompt: str,
    system_prompt: Optional[str] = None,
) -> list[dict[str, str]]:
    """
    Build messages list from prompt and optional system prompt.

    Args:
        prompt: User prompt text
        system_prompt: Optional system prompt

    Returns:
        List of message dicts for LLM API
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def _adjust_temperature_for_model(model: str, temperature: float) -> float:
    """
    Adjust temperature based on model requirements.

    Gemini 3 models require temperature=1.0 to avoid degraded reasoning.
    """
    if "gemini-3" in model.lower():
        return 1.0
    return temperature


class LLMClient:
    """
    Async LLM client with a hard timeout and usage logging.

    Errors from LiteLLM (RateLimitError, Timeout, APIError, ...) propagate
    unchanged so callers can classify them. A hard timeout surfaces as
    asyncio.TimeoutError.
    """

    def __init__(self, model: Optional[str] = None):
        """Initialize the LLM client and validate API keys."""
        self.model = model or get_default_text_model()
        self._validate_api_keys()

    def _validate_api_keys(self):
        """Warn when no provider API key is configured."""
        available_keys = []

        if os.getenv("OPENAI_API_KEY") or settings.OPENAI_API_KEY:
            available_keys.append("OpenAI")
        if os.getenv("ANTHROPIC_API_KEY") or settings.ANTHROPIC_API_KEY:
            available_keys.append("Anthropic")
        if os.getenv("GEMINI_API_KEY") or settings.GEMINI_API_KEY:
            available_keys.append("Google/Gemini")
        if os.getenv("MISTRAL_API_KEY") or settings.MISTRAL_API_KEY:
            available_keys.append("Mistral")

        if not available_keys:
            logger.warning(
                "No LLM API keys configured. Set at least one of: "
                "OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY, MISTRAL_API_KEY"
            )
        else:
            logger.info(f"LLM client initialized with providers: {available_keys}")

    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int = 500,
        json_mode: bool = False,
        timeout: Optional[float] = None,
        model: Optional[str] = None,
        capture_id: Optional[str] = None,
    ) -> tuple[Union[str, Any], LLMUsage]:
        """
        Generate a completion.

        Args:
            messages: Chat messages in OpenAI format
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            json_mode: Request structured JSON output and parse it.
            timeout: Hard deadline in seconds for the whole call
            model: Optional model override
            capture_id: Capture ID for usage attribution in logs

        Returns:
            Tuple of (response text or parsed JSON if json_mode, LLMUsage)

        Raises:
            json.JSONDecodeError: If json_mode=True and the response is not JSON
            asyncio.TimeoutError: If the hard timeout elapses
            Exception: Any LiteLLM error, unchanged
        """
        model = model or self.model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": _adjust_temperature_for_model(model, temperature),
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if timeout is not None:
            kwargs["timeout"] = timeout

        start_time = time.perf_counter()
        try:
            if timeout is not None:
                response = await asyncio.wait_for(acompletion(**kwargs), timeout)
            else:
                response = await acompletion(**kwargs)
        except Exception as e:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            logger.warning(
                f"LLM completion failed after {latency_ms}ms: "
                f"{type(e).__name__} (model={model})"
            )
            raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        usage = extract_usage_from_response(
            response=response,
            model=model,
            latency_ms=latency_ms,
            capture_id=capture_id,
        )
        logger.debug(f"LLM completion [{model}] {usage}, latency {latency_ms}ms")

        content = response.choices[0].message.content or ""
        if json_mode:
            content = json.loads(content)

        return content, usage


# Singleton instance
_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create singleton LLM client."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client


def reset_llm_client():
    """Reset the singleton client (useful for testing)."""
    global _client
    _client = None
