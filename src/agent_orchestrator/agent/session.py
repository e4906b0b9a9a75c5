"""
Session-scoped state owned by the orchestrator.

Everything that must survive between requests of one agent session lives on
a single ``Session`` record: the turn counter, the model pinned for the
current sequence, the editor context last delivered, and the compression
and fallback flags.
"""

from dataclasses import dataclass

import structlog

from ..config import Settings
from ..models import get_effective_model
from .ide_context import IdeContext
from .routing import ModelRouter, RoutingContext

logger = structlog.get_logger()


@dataclass
class Session:
    """Mutable state of one agent session."""

    session_id: str
    turn_count: int = 0
    last_prompt_id: str = ""
    sticky_model: str | None = None
    compression_disabled: bool = False
    last_known_user_memory: str | None = None
    force_full_ide_context: bool = True
    last_sent_ide_context: IdeContext | None = None
    fallback_mode: bool = False
    quota_error_occurred: bool = False

    def __post_init__(self):
        if not self.last_prompt_id:
            self.last_prompt_id = self.session_id

    def begin_sequence(self, prompt_id: str) -> bool:
        """Track ``prompt_id``; returns True if it starts a new sequence.

        A new sequence drops the model pinned for the previous one.
        """
        if prompt_id == self.last_prompt_id:
            return False
        self.last_prompt_id = prompt_id
        self.sticky_model = None
        return True

    def start_turn(self) -> int:
        self.turn_count += 1
        return self.turn_count

    def exceeds_turn_limit(self, max_session_turns: int) -> bool:
        return max_session_turns > 0 and self.turn_count > max_session_turns

    def reset_chat_state(self) -> None:
        """Clear the flags scoped to one chat."""
        self.force_full_ide_context = True
        self.compression_disabled = False

    async def resolve_model(
        self,
        router: ModelRouter,
        context: RoutingContext,
        settings: Settings | None = None,
    ) -> str:
        """Return the pinned model, routing once per sequence to pick it.

        With ``settings`` given, a session in fallback mode re-pins the
        sequence to the fallback model.
        """
        if not self.sticky_model:
            decision = await router.route(context)
            self.sticky_model = decision.model
            logger.debug(
                "Model pinned for sequence",
                prompt_id=self.last_prompt_id,
                model=decision.model,
                reason=decision.reason,
            )

        if settings is not None:
            self.sticky_model = self.model_for_attempt(self.sticky_model, settings)
        return self.sticky_model

    def effective_model_for_limit_check(self, settings: Settings) -> str:
        """Model whose token limit governs pre-flight checks.

        Before routing has run, an 'auto' configured model is resolved to the
        default model purely so the limit can be looked up.
        """
        if self.sticky_model:
            return self.sticky_model
        return get_effective_model(
            self.fallback_mode, settings.resolved_model, settings.fallback_model
        )

    def activate_fallback(self) -> None:
        if not self.fallback_mode:
            logger.warning("Switching session to fallback mode", session_id=self.session_id)
        self.fallback_mode = True

    def model_for_attempt(self, requested_model: str, settings: Settings) -> str:
        """Model to dispatch an attempt to, honouring fallback mode."""
        return settings.fallback_model if self.fallback_mode else requested_model
