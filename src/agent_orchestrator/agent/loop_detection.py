"""
Loop detector contract.

The detection algorithm itself lives outside this package; the orchestrator
only needs its boolean answers.
"""

from abc import ABC, abstractmethod

from .cancellation import CancelSignal
from .events import StreamEvent


class LoopDetector(ABC):
    """Flags a sequence that has fallen into repetitive behaviour."""

    @abstractmethod
    def reset(self, prompt_id: str) -> None:
        """Start tracking a new sequence."""
        pass

    @abstractmethod
    async def turn_started(self, signal: CancelSignal) -> bool:
        """Called before each model call; True if the sequence is already looping."""
        pass

    @abstractmethod
    def add_and_check(self, event: StreamEvent) -> bool:
        """Feed one streamed event; True if a loop was detected."""
        pass


class NoopLoopDetector(LoopDetector):
    """Detector that never flags anything."""

    def reset(self, prompt_id: str) -> None:
        pass

    async def turn_started(self, signal: CancelSignal) -> bool:
        return False

    def add_and_check(self, event: StreamEvent) -> bool:
        return False
