"""
Agent module - the session orchestration core.

Includes:
- SessionOrchestrator: per-request state machine around one streamed model call
- CompressionEngine: history compaction with a protocol-safe split point
- IdeContextDiffer: full and incremental editor context payloads
- RetryFallbackCoordinator: backoff and quota fallback for model calls
- Session: session-scoped state, including the model pinned per sequence
"""

from .cancellation import AbortController, CancelSignal
from .chat import Chat
from .compression import CompressionEngine, estimate_tokens, find_compress_split_point
from .events import ChatCompressionInfo, CompressionStatus, EventType, StreamEvent
from .ide_context import Cursor, IdeContext, IdeContextDiffer, OpenFile
from .loop_detection import LoopDetector, NoopLoopDetector
from .orchestrator import MAX_TURNS, SessionOrchestrator, TurnStream
from .retry import RetryFallbackCoordinator, RetryingContentGenerator
from .routing import DefaultModelRouter, ModelRouter, RoutingContext, RoutingDecision
from .session import Session
from .turn import Turn

__all__ = [
    "AbortController",
    "CancelSignal",
    "Chat",
    "ChatCompressionInfo",
    "CompressionEngine",
    "CompressionStatus",
    "Cursor",
    "DefaultModelRouter",
    "EventType",
    "IdeContext",
    "IdeContextDiffer",
    "LoopDetector",
    "MAX_TURNS",
    "ModelRouter",
    "NoopLoopDetector",
    "OpenFile",
    "RetryFallbackCoordinator",
    "RetryingContentGenerator",
    "RoutingContext",
    "RoutingDecision",
    "Session",
    "SessionOrchestrator",
    "StreamEvent",
    "Turn",
    "TurnStream",
    "estimate_tokens",
    "find_compress_split_point",
]
