"""
Tests for the context window pre-flight check.
"""

from agent_orchestrator.agent.context_guard import (
    estimate_request_tokens,
    remaining_token_count,
    will_overflow,
)
from agent_orchestrator.llm.base import Part
from agent_orchestrator.models import token_limit


def test_estimate_request_tokens():
    """Test that requests are estimated at four characters per token."""
    request = [Part(text="x" * 100)]
    # 100 characters of text plus 13 of JSON
    assert estimate_request_tokens(request) == 113 // 4


def test_estimate_plain_text_request():
    assert estimate_request_tokens("abcd" * 10) == (40 + 2) // 4


def test_remaining_token_count():
    assert remaining_token_count("gemini-2.5-pro", 48_576) == token_limit("gemini-2.5-pro") - 48_576


def test_overflow_boundary_is_strict():
    assert will_overflow(9500, 10000) is False
    assert will_overflow(9501, 10000) is True


def test_no_budget_left_always_overflows():
    assert will_overflow(1, 0) is True
