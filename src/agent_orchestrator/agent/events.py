"""
Event vocabulary for the orchestrator's output stream.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Kinds of events yielded by a send."""

    # Pass-through events produced by the tool-execution loop
    CONTENT = "content"
    THOUGHT = "thought"
    TOOL_CALL_REQUEST = "tool_call_request"
    FINISHED = "finished"
    USER_CANCELLED = "user_cancelled"
    RETRY = "retry"
    INVALID_STREAM = "invalid_stream"
    ERROR = "error"

    # Events originated by the orchestrator
    CHAT_COMPRESSED = "chat_compressed"
    MAX_SESSION_TURNS = "max_session_turns"
    CONTEXT_WINDOW_WILL_OVERFLOW = "context_window_will_overflow"
    LOOP_DETECTED = "loop_detected"


class CompressionStatus(str, Enum):
    """Outcome of a compression attempt."""

    NOOP = "noop"
    COMPRESSED = "compressed"
    FAILED_INFLATED = "compression_failed_inflated_token_count"


@dataclass
class ChatCompressionInfo:
    """Token counts before and after a compression attempt."""

    original_token_count: int
    new_token_count: int
    status: CompressionStatus


@dataclass
class ContextWindowOverflow:
    """Payload of a CONTEXT_WINDOW_WILL_OVERFLOW event."""

    estimated_request_token_count: int
    remaining_token_count: int


@dataclass
class StreamEvent:
    """A single event in the orchestrator's output stream."""

    type: EventType
    value: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (
            EventType.MAX_SESSION_TURNS,
            EventType.CONTEXT_WINDOW_WILL_OVERFLOW,
            EventType.LOOP_DETECTED,
            EventType.ERROR,
        )
