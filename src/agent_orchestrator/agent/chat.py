"""
Live chat state: the conversation history plus its generation config.
"""

import copy
from dataclasses import dataclass, field
from typing import Any

from ..llm.base import Content, GenerateContentConfig, Part


def _is_valid_model_content(content: Content) -> bool:
    if not content.parts:
        return False
    for part in content.parts:
        if part.thought:
            continue
        if part.function_call is not None or part.function_response is not None:
            continue
        if part.text is None or part.text == "":
            return False
    return True


def extract_curated_history(history: list[Content]) -> list[Content]:
    """Drop model turns that came back empty or malformed.

    Consecutive model entries are kept or dropped as a group so a partial
    response never reaches the model.
    """
    curated: list[Content] = []
    i = 0
    while i < len(history):
        if history[i].role == "user":
            curated.append(history[i])
            i += 1
            continue

        model_output: list[Content] = []
        valid = True
        while i < len(history) and history[i].role == "model":
            model_output.append(history[i])
            if valid and not _is_valid_model_content(history[i]):
                valid = False
            i += 1
        if valid:
            curated.extend(model_output)
    return curated


@dataclass
class Chat:
    """Conversation history with the config it is sent under."""

    config: GenerateContentConfig = field(default_factory=GenerateContentConfig)
    history: list[Content] = field(default_factory=list)

    def add_history(self, content: Content) -> None:
        """Append one entry."""
        self.history.append(content)

    def get_history(self, curated: bool = False) -> list[Content]:
        """Return a copy of the history, optionally curated."""
        history = extract_curated_history(self.history) if curated else self.history
        return copy.deepcopy(history)

    def set_history(self, history: list[Content]) -> None:
        self.history = list(history)

    def set_system_instruction(self, instruction: str) -> None:
        self.config.system_instruction = instruction

    def set_tools(self, tools: list[dict[str, Any]]) -> None:
        self.config.tools = tools

    def strip_thoughts_from_history(self) -> None:
        """Remove thought parts, dropping entries left with nothing."""
        stripped: list[Content] = []
        for content in self.history:
            parts: list[Part] = [p for p in content.parts if not p.thought]
            if parts:
                stripped.append(Content(role=content.role, parts=parts))
        self.history = stripped

    @property
    def has_pending_tool_call(self) -> bool:
        """Whether the model's last entry is a function call awaiting its response."""
        last = self.history[-1] if self.history else None
        return last is not None and last.role == "model" and last.has_function_call

    @property
    def message_count(self) -> int:
        return len(self.history)
