"""
Model routing contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config import Settings
from ..llm.base import Content, PartListUnion
from .cancellation import CancelSignal

if TYPE_CHECKING:
    from .session import Session


@dataclass
class RoutingContext:
    """What the router sees when choosing a model."""

    history: list[Content]
    request: PartListUnion
    signal: CancelSignal


@dataclass
class RoutingDecision:
    """The model chosen for a sequence."""

    model: str
    reason: str = ""


class ModelRouter(ABC):
    """Maps a request to a model identifier."""

    @abstractmethod
    async def route(self, context: RoutingContext) -> RoutingDecision:
        pass


class DefaultModelRouter(ModelRouter):
    """Routes to the configured model, or the fallback model in fallback mode."""

    def __init__(self, settings: Settings, session: "Session"):
        self.settings = settings
        self.session = session

    async def route(self, context: RoutingContext) -> RoutingDecision:
        if self.session.fallback_mode:
            return RoutingDecision(model=self.settings.fallback_model, reason="fallback")
        return RoutingDecision(model=self.settings.resolved_model, reason="default")
