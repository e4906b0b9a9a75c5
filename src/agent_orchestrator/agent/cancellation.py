"""
Cooperative cancellation signals.

A ``CancelSignal`` is a read-only view that reports whether work should
stop. ``AbortController`` owns a signal and can trip it. Signals can be
linked so that the result is aborted as soon as any source is.
"""

import asyncio


class CancelSignal:
    """Read-only cancellation flag."""

    def __init__(self, sources: tuple["CancelSignal", ...] = ()):
        self._event = asyncio.Event()
        self._sources = sources

    @property
    def aborted(self) -> bool:
        if self._event.is_set():
            return True
        return any(s.aborted for s in self._sources)

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        if self.aborted:
            return
        waiters = [asyncio.ensure_future(self._event.wait())]
        waiters.extend(asyncio.ensure_future(s.wait()) for s in self._sources)
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for w in waiters:
                w.cancel()

    def _trip(self) -> None:
        self._event.set()

    @classmethod
    def any(cls, *signals: "CancelSignal") -> "CancelSignal":
        """Create a signal aborted whenever any of ``signals`` is."""
        return cls(sources=tuple(signals))


class AbortController:
    """Owner of a cancel signal."""

    def __init__(self):
        self.signal = CancelSignal()

    def abort(self) -> None:
        self.signal._trip()
