"""
Tests for chat compression.
"""

import pytest
from unittest.mock import AsyncMock

from agent_orchestrator.agent.chat import Chat
from agent_orchestrator.agent.compression import (
    COMPRESSION_PRESERVE_THRESHOLD,
    CompressionEngine,
    estimate_tokens,
    find_compress_split_point,
)
from agent_orchestrator.agent.events import CompressionStatus
from agent_orchestrator.agent.prompts import COMPRESSION_ACK
from agent_orchestrator.agent.session import Session
from agent_orchestrator.agent.usage import TokenUsageTracker
from agent_orchestrator.config import ChatCompressionConfig
from agent_orchestrator.llm.base import Content, FunctionCall, FunctionResponse, Part, to_json
from agent_orchestrator.models import token_limit

from fakes import make_generator, make_settings, text_response

COMPRESS_FRACTION = 1 - COMPRESSION_PRESERVE_THRESHOLD


def call(name: str) -> Content:
    return Content(role="model", parts=[Part(function_call=FunctionCall(name=name))])


def response(name: str) -> Content:
    return Content(role="user", parts=[Part(function_response=FunctionResponse(name=name))])


def tool_history() -> list[Content]:
    return [
        Content.user_text("hello"),
        Content.model_text("hi"),
        Content.user_text("do X"),
        call("A"),
        response("A"),
        Content.model_text("done"),
    ]


def test_estimate_tokens_empty():
    """Test token estimation for empty history."""
    assert estimate_tokens([]) == 0


def test_estimate_tokens_uses_serialized_length():
    """Test that estimation is serialized characters divided by four."""
    history = [Content.user_text("x" * 100), Content.model_text("y" * 100)]
    expected = sum(len(to_json(c)) for c in history) // 4
    assert estimate_tokens(history) == expected


@pytest.mark.parametrize("fraction", [0, 1, -0.5, 1.5])
def test_split_point_rejects_bad_fraction(fraction):
    with pytest.raises(ValueError):
        find_compress_split_point([Content.user_text("hi")], fraction)


def test_split_point_empty_history():
    assert find_compress_split_point([], COMPRESS_FRACTION) == 0


def test_split_point_compresses_everything_after_finished_answer():
    """No user entry past the target, and the history ends on a plain answer."""
    history = tool_history()
    split = find_compress_split_point(history, COMPRESS_FRACTION)

    assert split == len(history)
    assert split != 4  # never the function response


def test_split_point_first_user_entry_past_target():
    history = tool_history() + [Content.user_text("next")]
    split = find_compress_split_point(history, COMPRESS_FRACTION)

    char_counts = [len(to_json(c)) for c in history]
    assert split == 6
    assert sum(char_counts[:split]) >= sum(char_counts) * COMPRESS_FRACTION


def test_split_point_falls_back_when_ending_on_function_call():
    history = tool_history()[:4]
    assert find_compress_split_point(history, COMPRESS_FRACTION) == 2


def test_split_point_never_separates_call_and_response():
    """Test that the split never lands between a call and its response."""
    history = []
    for i in range(20):
        history.append(Content.user_text(f"request {i} " + "x" * (i * 7 % 50)))
        history.append(call(f"tool_{i}"))
        history.append(response(f"tool_{i}"))
        history.append(Content.model_text("y" * (i * 13 % 40)))

    for fraction in (0.1, 0.3, 0.5, 0.7, 0.9):
        split = find_compress_split_point(history, fraction)
        if split < len(history):
            assert history[split].role == "user"
            assert not history[split].has_function_response
        if 0 < split < len(history):
            assert not history[split - 1].has_function_call


def make_engine(session=None, usage=None, generator=None, **settings_overrides):
    settings = make_settings(**settings_overrides)
    session = session or Session(session_id="s")
    usage = usage or TokenUsageTracker()
    generator = generator or make_generator("summary")

    async def chat_builder(extra_history):
        return Chat(history=[Content.user_text("setup")] + list(extra_history))

    engine = CompressionEngine(settings, session, generator, usage, chat_builder)
    return engine, session, usage, generator


def long_chat(turns: int = 10) -> Chat:
    chat = Chat()
    for i in range(turns):
        chat.add_history(Content.user_text(f"question {i} " + "q" * 400))
        chat.add_history(Content.model_text(f"answer {i} " + "a" * 400))
    return chat


@pytest.mark.asyncio
async def test_compress_empty_history_is_noop():
    engine, _, _, generator = make_engine()

    outcome = await engine.compress(Chat(), "p1", force=True)

    assert outcome.info.status == CompressionStatus.NOOP
    assert outcome.info.original_token_count == 0
    assert outcome.chat is None
    generator.generate.assert_not_called()


@pytest.mark.asyncio
async def test_compress_below_threshold_is_noop():
    engine, _, usage, generator = make_engine()
    usage.set_last_prompt_token_count(1000)

    outcome = await engine.compress(long_chat(), "p1")

    assert outcome.info.status == CompressionStatus.NOOP
    assert outcome.info.original_token_count == 1000
    assert outcome.info.new_token_count == 1000
    generator.generate.assert_not_called()


@pytest.mark.asyncio
async def test_compress_uses_configured_threshold():
    engine, _, usage, generator = make_engine(
        chat_compression=ChatCompressionConfig(context_percentage_threshold=0.001)
    )
    usage.set_last_prompt_token_count(int(token_limit("gemini-2.5-pro") * 0.002))

    outcome = await engine.compress(long_chat(), "p1")

    assert outcome.info.status == CompressionStatus.COMPRESSED
    generator.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_compress_success_rebuilds_history():
    engine, _, usage, generator = make_engine()
    chat = long_chat()
    usage.set_last_prompt_token_count(800_000)

    outcome = await engine.compress(chat, "p1")

    assert outcome.info.status == CompressionStatus.COMPRESSED
    assert outcome.info.original_token_count == 800_000
    assert outcome.info.new_token_count < 800_000
    assert usage.last_prompt_token_count == outcome.info.new_token_count

    rebuilt = outcome.chat.get_history()
    assert rebuilt[0].text == "setup"
    assert rebuilt[1].role == "user" and rebuilt[1].text == "summary"
    assert rebuilt[2].role == "model" and rebuilt[2].text == COMPRESSION_ACK
    assert rebuilt[-1].text == chat.history[-1].text

    request, prompt_id = generator.generate.await_args.args
    assert prompt_id == "p1"
    assert request.contents[-1].text.startswith("First, reason in your scratchpad")
    assert "<state_snapshot>" in request.config.system_instruction


@pytest.mark.asyncio
async def test_forced_inflated_compression_keeps_chat():
    engine, session, usage, generator = make_engine(generator=make_generator("s" * 20_000))
    chat = long_chat(2)
    before = chat.get_history()
    usage.set_last_prompt_token_count(10)

    outcome = await engine.compress(chat, "p1", force=True)

    assert outcome.info.status == CompressionStatus.FAILED_INFLATED
    assert outcome.chat is None
    assert chat.get_history() == before
    assert usage.last_prompt_token_count == 10
    # Forced attempts never disable compression
    assert session.compression_disabled is False


@pytest.mark.asyncio
async def test_failed_automatic_compression_disables_later_attempts():
    engine, session, usage, generator = make_engine(
        generator=make_generator("s" * 20_000),
        chat_compression=ChatCompressionConfig(context_percentage_threshold=0.000001),
    )
    chat = long_chat(2)
    usage.set_last_prompt_token_count(10)

    first = await engine.compress(chat, "p1")
    second = await engine.compress(chat, "p1")

    assert first.info.status == CompressionStatus.FAILED_INFLATED
    assert session.compression_disabled is True
    assert second.info.status == CompressionStatus.NOOP
    assert second.info.original_token_count == 0
    assert second.info.new_token_count == 0
    assert generator.generate.await_count == 1


@pytest.mark.asyncio
async def test_forced_compression_runs_after_failure():
    generator = AsyncMock()
    generator.generate = AsyncMock(side_effect=[
        text_response("s" * 20_000),
        text_response("short"),
    ])
    engine, session, usage, _ = make_engine(
        generator=generator,
        chat_compression=ChatCompressionConfig(context_percentage_threshold=0.000001),
    )
    chat = long_chat()
    usage.set_last_prompt_token_count(5000)

    failed = await engine.compress(chat, "p1")
    forced = await engine.compress(chat, "p1", force=True)

    assert failed.info.status == CompressionStatus.FAILED_INFLATED
    assert forced.info.status == CompressionStatus.COMPRESSED


@pytest.mark.asyncio
async def test_compress_noop_when_nothing_precedes_split():
    engine, _, usage, generator = make_engine()
    chat = Chat(history=[Content.user_text("only question"), call("A")])
    usage.set_last_prompt_token_count(900_000)

    outcome = await engine.compress(chat, "p1")

    assert outcome.info.status == CompressionStatus.NOOP
    generator.generate.assert_not_called()
