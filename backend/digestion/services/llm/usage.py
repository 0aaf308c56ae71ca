"""
LLM Usage Types

Defines the LLMUsage dataclass and the helper that extracts token and cost
information from LiteLLM responses. Usage is logged per call so provider
spend can be traced back to a capture.

Usage:
    from digestion.services.llm.usage import extract_usage_from_response

    usage = extract_usage_from_response(
        response=litellm_response,
        model="openai/gpt-4o-mini",
        latency_ms=812,
        capture_id="cap-1",
    )
"""

import uuid
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class LLMUsage:
    """
    Structured LLM usage data returned from completion calls.

    Attributes:
        request_id: Unique identifier for this request (auto-generated UUID)
        model: Full model identifier (e.g., "openai/gpt-4o-mini")
        provider: Extracted provider name (e.g., "openai")
        prompt_tokens: Number of input tokens
        completion_tokens: Number of output tokens
        total_tokens: Total tokens used
        cost_usd: Total cost in USD, when LiteLLM knows the price
        capture_id: Capture this call was made for
        latency_ms: Request latency in milliseconds
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    model: str = ""
    provider: str = ""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    cost_usd: Optional[float] = None

    capture_id: Optional[str] = None
    latency_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        cost_str = f"${self.cost_usd:.4f}" if self.cost_usd else "N/A"
        tokens_str = str(self.total_tokens) if self.total_tokens else "N/A"
        return f"LLMUsage({self.model}, cost={cost_str}, tokens={tokens_str})"


def extract_provider(model: str) -> str:
    """
    Extract provider name from model identifier.

    Args:
        model: Full model identifier (e.g., "openai/gpt-4o-mini")

    Returns:
        Provider name (e.g., "openai") or "unknown" if not parseable
    """
    if "/" in model:
        return model.split("/")[0]
    return "unknown"


def extract_usage_from_response(
    response,
    model: str,
    latency_ms: int,
    capture_id: Optional[str] = None,
) -> LLMUsage:
    """
    Extract usage and cost information from a LiteLLM response.

    Args:
        response: LiteLLM response object
        model: Model identifier used for the request
        latency_ms: Measured latency in milliseconds
        capture_id: Optional capture ID for attribution

    Returns:
        LLMUsage populated with whatever the response carries
    """
    usage = LLMUsage(
        model=model,
        provider=extract_provider(model),
        latency_ms=latency_ms,
        capture_id=capture_id,
    )

    if getattr(response, "usage", None):
        usage.prompt_tokens = getattr(response.usage, "prompt_tokens", None)
        usage.completion_tokens = getattr(response.usage, "completion_tokens", None)
        usage.total_tokens = getattr(response.usage, "total_tokens", None)

    # LiteLLM attaches the computed cost to its hidden params
    hidden = getattr(response, "_hidden_params", None)
    if isinstance(hidden, dict):
        usage.cost_usd = hidden.get("response_cost")

    return usage
