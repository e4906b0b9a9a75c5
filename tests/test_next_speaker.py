"""
Tests for the next-speaker check.
"""

import pytest
from unittest.mock import AsyncMock

from agent_orchestrator.agent.cancellation import AbortController, CancelSignal
from agent_orchestrator.agent.chat import Chat
from agent_orchestrator.agent.next_speaker import check_next_speaker
from agent_orchestrator.llm.base import Content, FunctionResponse, Part

from fakes import make_generator


@pytest.mark.asyncio
async def test_empty_history_has_no_decision():
    client = make_generator()
    assert await check_next_speaker(Chat(), client, CancelSignal(), "p1") is None
    client.generate.assert_not_called()


@pytest.mark.asyncio
async def test_function_response_means_model_speaks():
    chat = Chat(history=[
        Content.user_text("run it"),
        Content(role="user", parts=[Part(function_response=FunctionResponse(name="run"))]),
    ])
    client = make_generator()

    result = await check_next_speaker(chat, client, CancelSignal(), "p1")

    assert result.next_speaker == "model"
    client.generate.assert_not_called()


@pytest.mark.asyncio
async def test_user_last_has_no_decision():
    chat = Chat(history=[Content.user_text("hi")])
    assert await check_next_speaker(chat, make_generator(), CancelSignal(), "p1") is None


@pytest.mark.asyncio
async def test_asks_model_after_model_turn():
    chat = Chat(history=[Content.user_text("hi"), Content.model_text("Next, I will edit the file.")])
    client = make_generator('{"reasoning": "states next action", "next_speaker": "model"}')

    result = await check_next_speaker(chat, client, CancelSignal(), "p1")

    assert result.next_speaker == "model"
    request, prompt_id = client.generate.await_args.args
    assert prompt_id == "p1"
    assert request.config.response_mime_type == "application/json"
    assert request.contents[-1].role == "user"


@pytest.mark.asyncio
async def test_fenced_json_is_accepted():
    chat = Chat(history=[Content.user_text("hi"), Content.model_text("Done. Anything else?")])
    client = make_generator('```json\n{"reasoning": "question", "next_speaker": "user"}\n```')

    result = await check_next_speaker(chat, client, CancelSignal(), "p1")

    assert result.next_speaker == "user"


@pytest.mark.asyncio
async def test_malformed_answer_has_no_decision():
    chat = Chat(history=[Content.user_text("hi"), Content.model_text("hello")])
    client = make_generator('{"next_speaker": "nobody"}')

    assert await check_next_speaker(chat, client, CancelSignal(), "p1") is None


@pytest.mark.asyncio
async def test_client_error_has_no_decision():
    chat = Chat(history=[Content.user_text("hi"), Content.model_text("hello")])
    client = AsyncMock()
    client.generate = AsyncMock(side_effect=RuntimeError("boom"))

    assert await check_next_speaker(chat, client, CancelSignal(), "p1") is None


@pytest.mark.asyncio
async def test_aborted_signal_skips_call():
    chat = Chat(history=[Content.user_text("hi"), Content.model_text("hello")])
    client = make_generator()
    controller = AbortController()
    controller.abort()

    assert await check_next_speaker(chat, client, controller.signal, "p1") is None
    client.generate.assert_not_called()
