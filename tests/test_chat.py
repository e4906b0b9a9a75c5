"""
Tests for the chat history container.
"""

from agent_orchestrator.agent.chat import Chat, extract_curated_history
from agent_orchestrator.llm.base import Content, FunctionCall, FunctionResponse, Part


def test_add_and_get_history_returns_copy():
    chat = Chat()
    chat.add_history(Content.user_text("Hello!"))

    history = chat.get_history()
    history[0].parts[0].text = "changed"

    assert chat.message_count == 1
    assert chat.history[0].text == "Hello!"


def test_curated_history_drops_empty_model_turns():
    history = [
        Content.user_text("first"),
        Content(role="model", parts=[]),
        Content.user_text("second"),
        Content.model_text("answer"),
    ]

    curated = extract_curated_history(history)

    assert [c.text for c in curated] == ["first", "second", "answer"]


def test_curated_history_drops_whole_invalid_model_group():
    history = [
        Content.user_text("question"),
        Content.model_text("partial"),
        Content(role="model", parts=[Part(text="")]),
    ]

    assert [c.text for c in extract_curated_history(history)] == ["question"]


def test_curated_history_keeps_function_calls():
    history = [
        Content.user_text("run it"),
        Content(role="model", parts=[Part(function_call=FunctionCall(name="run"))]),
        Content(role="user", parts=[Part(function_response=FunctionResponse(name="run"))]),
    ]

    assert len(extract_curated_history(history)) == 3


def test_pending_tool_call():
    chat = Chat(history=[Content.user_text("run it")])
    assert chat.has_pending_tool_call is False

    chat.add_history(Content(role="model", parts=[Part(function_call=FunctionCall(name="run"))]))
    assert chat.has_pending_tool_call is True

    chat.add_history(Content(role="user", parts=[Part(function_response=FunctionResponse(name="run"))]))
    assert chat.has_pending_tool_call is False


def test_strip_thoughts_from_history():
    chat = Chat(history=[
        Content.user_text("hi"),
        Content(role="model", parts=[Part(text="thinking", thought=True)]),
        Content(role="model", parts=[Part(text="hmm", thought=True), Part(text="hello")]),
    ])

    chat.strip_thoughts_from_history()

    assert len(chat.history) == 2
    assert chat.history[1].parts == [Part(text="hello")]


def test_set_system_instruction():
    chat = Chat()
    chat.set_system_instruction("be brief")
    assert chat.config.system_instruction == "be brief"
