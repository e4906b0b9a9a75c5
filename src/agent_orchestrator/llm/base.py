"""
Base types for talking to a content generation backend.

History entries follow the generative-model wire shape: a ``Content`` has a
role of ``user`` or ``model`` and a list of ``Part`` objects, each carrying
text, a function call, or a function response.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx


@dataclass
class FunctionCall:
    """A function call requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "args": self.args}
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass
class FunctionResponse:
    """The result of a function call, sent back on the user role."""

    name: str
    response: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "response": self.response}
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass
class Part:
    """One part of a content entry."""

    text: str | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None
    thought: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.text is not None:
            data["text"] = self.text
        if self.function_call is not None:
            data["functionCall"] = self.function_call.to_dict()
        if self.function_response is not None:
            data["functionResponse"] = self.function_response.to_dict()
        if self.thought:
            data["thought"] = True
        return data


@dataclass
class Content:
    """A single conversation history entry."""

    role: Literal["user", "model"]
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "Content":
        return cls(role="user", parts=[Part(text=text)])

    @classmethod
    def model_text(cls, text: str) -> "Content":
        return cls(role="model", parts=[Part(text=text)])

    @property
    def has_function_call(self) -> bool:
        return any(p.function_call is not None for p in self.parts)

    @property
    def has_function_response(self) -> bool:
        return any(p.function_response is not None for p in self.parts)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if p.text and not p.thought)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [p.to_dict() for p in self.parts]}


# A request is either plain text or a list of parts
PartListUnion = str | list[Part]


def to_json(value: Any) -> str:
    """Serialize compactly, matching the wire form used for size estimates."""
    return json.dumps(_plain(value), separators=(",", ":"), ensure_ascii=False)


def _plain(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


@dataclass
class GenerateContentConfig:
    """Generation parameters for a single request."""

    system_instruction: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    thinking_budget: int | None = None
    include_thoughts: bool = False
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None
    tools: list[dict[str, Any]] | None = None


@dataclass
class GenerateContentRequest:
    """A non-streaming generation request."""

    model: str
    contents: list[Content]
    config: GenerateContentConfig = field(default_factory=GenerateContentConfig)


@dataclass
class GenerateContentResponse:
    """Response from a non-streaming generation call."""

    candidates: list[Content] = field(default_factory=list)
    prompt_token_count: int = 0
    finish_reason: str | None = None

    @property
    def text(self) -> str | None:
        """Text of the first candidate, or None when there is none."""
        if not self.candidates:
            return None
        text = self.candidates[0].text
        return text or None


class ContentGenerator(ABC):
    """Backend that turns a request into generated content."""

    @abstractmethod
    async def generate(
        self,
        request: GenerateContentRequest,
        prompt_id: str,
    ) -> GenerateContentResponse:
        """Generate a response for the request."""
        pass


def get_status_code(error: BaseException) -> int | None:
    """Extract an HTTP status code from an API error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None
