"""
Unit tests for the LiteLLM client wrapper and usage extraction.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from digestion.services.llm.client import (
    LLMClient,
    _adjust_temperature_for_model,
    build_messages,
    get_llm_client,
    reset_llm_client,
)
from digestion.services.llm.usage import extract_provider, extract_usage_from_response


def make_completion(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(prompt_tokens=120, completion_tokens=40, total_tokens=160)
    response._hidden_params = {"response_cost": 0.0021}
    return response


class TestBuildMessages:
    def test_with_system_prompt(self) -> None:
        messages = build_messages("Summarize", system_prompt="Be brief")

        assert messages == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Summarize"},
        ]

    def test_without_system_prompt(self) -> None:
        assert build_messages("Summarize") == [{"role": "user", "content": "Summarize"}]

    def test_gemini_3_temperature_pinned(self) -> None:
        assert _adjust_temperature_for_model("gemini/gemini-3-pro", 0.2) == 1.0
        assert _adjust_temperature_for_model("openai/gpt-4o-mini", 0.2) == 0.2


class TestLLMClientComplete:
    @pytest.mark.asyncio
    async def test_json_mode_parses_content(self) -> None:
        client = LLMClient(model="openai/gpt-4o-mini")
        payload = {"summary": "Short."}

        with patch(
            "digestion.services.llm.client.acompletion",
            AsyncMock(return_value=make_completion(json.dumps(payload))),
        ) as mock_completion:
            content, usage = await client.complete(
                messages=build_messages("hi"),
                json_mode=True,
                timeout=5.0,
                capture_id="cap-1",
            )

        assert content == payload
        assert usage.total_tokens == 160
        assert usage.cost_usd == 0.0021
        assert usage.capture_id == "cap-1"
        kwargs = mock_completion.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_plain_text_and_model_override(self) -> None:
        client = LLMClient(model="openai/gpt-4o-mini")

        with patch(
            "digestion.services.llm.client.acompletion",
            AsyncMock(return_value=make_completion("plain answer")),
        ) as mock_completion:
            content, usage = await client.complete(
                messages=build_messages("hi"), model="anthropic/claude-3-haiku"
            )

        assert content == "plain answer"
        assert usage.provider == "anthropic"
        assert "response_format" not in mock_completion.call_args.kwargs
        assert "timeout" not in mock_completion.call_args.kwargs

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        client = LLMClient(model="openai/gpt-4o-mini")

        with patch(
            "digestion.services.llm.client.acompletion",
            AsyncMock(return_value=make_completion("not json")),
        ):
            with pytest.raises(json.JSONDecodeError):
                await client.complete(messages=build_messages("hi"), json_mode=True)

    @pytest.mark.asyncio
    async def test_hard_timeout(self) -> None:
        client = LLMClient(model="openai/gpt-4o-mini")

        async def slow_completion(**kwargs):
            await asyncio.sleep(1)

        with patch("digestion.services.llm.client.acompletion", slow_completion):
            with pytest.raises(asyncio.TimeoutError):
                await client.complete(messages=build_messages("hi"), timeout=0.01)

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self) -> None:
        client = LLMClient(model="openai/gpt-4o-mini")

        with patch(
            "digestion.services.llm.client.acompletion",
            AsyncMock(side_effect=RuntimeError("provider down")),
        ):
            with pytest.raises(RuntimeError):
                await client.complete(messages=build_messages("hi"))


class TestSingleton:
    def test_get_llm_client_cached(self) -> None:
        reset_llm_client()
        try:
            assert get_llm_client() is get_llm_client()
        finally:
            reset_llm_client()


class TestUsageExtraction:
    def test_extract_provider(self) -> None:
        assert extract_provider("openai/gpt-4o-mini") == "openai"
        assert extract_provider("gpt-4o-mini") == "unknown"

    def test_response_without_usage(self) -> None:
        response = MagicMock(usage=None, _hidden_params=None)

        usage = extract_usage_from_response(response, "openai/gpt-4o-mini", 12)

        assert usage.total_tokens is None
        assert usage.cost_usd is None
        assert usage.latency_ms == 12
        assert "N/A" in str(usage)
