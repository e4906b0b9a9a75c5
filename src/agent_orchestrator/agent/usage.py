"""
Token usage tracking shared between the orchestrator and its host.
"""

from dataclasses import dataclass


@dataclass
class TokenUsageTracker:
    """Holds the prompt token count last reported for the session."""

    last_prompt_token_count: int = 0

    def set_last_prompt_token_count(self, count: int) -> None:
        self.last_prompt_token_count = max(0, count)
