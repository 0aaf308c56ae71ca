"""
LLM Service Module

Provides a unified interface to multiple LLM providers via LiteLLM.

Usage:
    from digestion.services.llm import get_llm_client, build_messages

    client = get_llm_client()
    content, usage = await client.complete(messages=build_messages("..."))
"""

from digestion.services.llm.client import (
    LLMClient,
    build_messages,
    get_default_text_model,
    get_llm_client,
    reset_llm_client,
)
from digestion.services.llm.usage import LLMUsage

__all__ = [
    "LLMClient",
    "LLMUsage",
    "build_messages",
    "get_default_text_model",
    "get_llm_client",
    "reset_llm_client",
]
