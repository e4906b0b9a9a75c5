"""
Pre-flight check that a request still fits in the context window.
"""

from ..llm.base import PartListUnion, to_json
from ..models import token_limit

# Approximate characters per token
CHARS_PER_TOKEN = 4

# Share of the remaining budget a single request may use
OVERFLOW_MARGIN = 0.95


def estimate_request_tokens(request: PartListUnion) -> int:
    """Estimate token count for a request from its serialized length."""
    return len(to_json(request)) // CHARS_PER_TOKEN


def remaining_token_count(model: str, last_prompt_token_count: int) -> int:
    return token_limit(model) - last_prompt_token_count


def will_overflow(estimated_request_tokens: int, remaining_tokens: int) -> bool:
    """True if the request would use more than the margin of what is left."""
    return estimated_request_tokens > remaining_tokens * OVERFLOW_MARGIN
