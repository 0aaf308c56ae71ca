"""
Digestion Prompts

LLM prompts for turning a raw capture into a summary, key ideas and todos.

The primary prompt asks for structured JSON matching DigestionResponse. The
fallback prompt asks for a plain-text summary only and is used when the
primary call fails for any reason other than rate limiting.
"""

from digestion.enums import ContentType


def content_label(content_type: ContentType) -> str:
    """Human-readable label for the content type used inside prompts."""
    if content_type == ContentType.AUDIO_TRANSCRIBED:
        return "transcribed audio"
    return "text"


# =============================================================================
# Primary (JSON) Prompt
# =============================================================================

DIGESTION_SYSTEM_PROMPT = """You are an AI assistant specialized in analyzing personal thoughts and ideas.
Your goal is to extract the essence of the user's thought, identify key insights, and detect actionable tasks.

For each thought provided:
1. Generate a concise summary (2-3 sentences maximum) that captures the core message.
2. Extract key ideas (1-5 ideas, prioritize quality over quantity).
3. Detect actionable tasks (0-10, only real actions).

Guidelines for summary and ideas:
- Be concise and precise.
- If the thought is unclear or minimal, provide a best-effort summary.
- Preserve the user's voice and intent.
- Do not add information not present in the original thought.

Guidelines for todo extraction:
- A todo is an action the user needs to take (send, call, buy, finish, ...).
- Extract the deadline if mentioned ("by Friday", "tomorrow", "in 3 days").
- Infer priority: high for urgent or deadline-driven, medium for things the
  user needs to do, low for "maybe" or "when I have time".
- If there is no clear action, return an empty array.

You must respond with valid JSON in this exact format:
{
  "summary": "string",
  "ideas": ["idea 1", "idea 2"],
  "todos": [
    {"description": "task", "deadline": "Friday or null", "priority": "high | medium | low"}
  ],
  "confidence": "high | medium | low"
}"""

DIGESTION_USER_PROMPT = """Analyze the following {label} thought:

\"\"\"
{content}
\"\"\"

Provide a concise summary (2-3 sentences), key ideas (1-5) and any actionable
todos (0-10). Respond with JSON only."""


# =============================================================================
# Fallback (plain text) Prompt
# =============================================================================

FALLBACK_SYSTEM_PROMPT = (
    "You are a helpful assistant. Provide concise summaries of user thoughts."
)

FALLBACK_USER_PROMPT = """Summarize this {label} thought in 2-3 sentences:

\"\"\"
{content}
\"\"\"

Just provide a plain text summary."""


def build_digestion_prompt(content: str, content_type: ContentType) -> str:
    return DIGESTION_USER_PROMPT.format(
        label=content_label(content_type), content=content
    )


def build_fallback_prompt(content: str, content_type: ContentType) -> str:
    return FALLBACK_USER_PROMPT.format(
        label=content_label(content_type), content=content
    )
