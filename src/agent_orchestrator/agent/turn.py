"""
Contract for one model call plus its tool-execution loop.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

from ..llm.base import FunctionCall, PartListUnion
from .cancellation import CancelSignal
from .chat import Chat
from .events import StreamEvent


class Turn(ABC):
    """A single streamed exchange with the model.

    Implementations stream events for one request and expose the tool calls
    still awaiting execution and the finish reason once the stream is
    exhausted.
    """

    def __init__(self, chat: Chat, prompt_id: str):
        self.chat = chat
        self.prompt_id = prompt_id
        self.pending_tool_calls: list[FunctionCall] = []
        self.finish_reason: str | None = None

    @abstractmethod
    def run(
        self,
        model: str,
        request: PartListUnion,
        signal: CancelSignal,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the events of this turn."""
        pass


TurnFactory = Callable[[Chat, str], Turn]
