"""
Retry with backoff and quota fallback around a single model invocation.

Transient failures (429, 5xx, transport errors) are retried with
exponential backoff. When the backend keeps answering 429 for an OAuth
session, the fallback handler is consulted; if it moves the session into
fallback mode the attempt chain starts over against the fallback model.
"""

import dataclasses
from typing import Awaitable, Callable, Literal, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..config import Settings
from ..llm.base import (
    ContentGenerator,
    GenerateContentRequest,
    GenerateContentResponse,
    get_status_code,
)
from .session import Session

logger = structlog.get_logger()

T = TypeVar("T")

FallbackIntent = Literal["retry", "stop", "auth"]

# (failed_model, fallback_model, error) -> intent
FallbackHandler = Callable[[str, str, BaseException | None], Awaitable[FallbackIntent | None]]

OAUTH_PERSONAL = "oauth-personal"


def is_retryable_error(error: BaseException) -> bool:
    """Whether an API error is worth another attempt."""
    if isinstance(error, httpx.TransportError):
        return True
    status = get_status_code(error)
    if status is None:
        return False
    return status == 429 or 500 <= status < 600


class _FallbackActivated(Exception):
    """Restart the attempt chain on the fallback model."""


class _StopChain(Exception):
    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


class _ChainState:
    def __init__(self):
        self.consecutive_429 = 0


class RetryFallbackCoordinator:
    """Wraps model invocations with backoff and fallback switching."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        fallback_handler: FallbackHandler | None = None,
    ):
        self.session = session
        self.settings = settings
        self.fallback_handler = fallback_handler

    async def handle_fallback(
        self,
        failed_model: str,
        auth_type: str | None,
        error: BaseException | None = None,
    ) -> FallbackIntent | None:
        """Ask the host whether to continue on the fallback model."""
        if auth_type != OAUTH_PERSONAL or self.fallback_handler is None:
            return None

        fallback_model = self.settings.fallback_model
        if failed_model == fallback_model:
            return None

        try:
            intent = await self.fallback_handler(failed_model, fallback_model, error)
        except Exception as e:
            logger.error("Fallback handler failed", model=failed_model, error=str(e))
            return None

        if intent in ("retry", "stop"):
            self.session.activate_fallback()
        logger.info(
            "Fallback handler responded",
            failed_model=failed_model,
            fallback_model=fallback_model,
            intent=intent,
        )
        return intent

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Model call failed, retrying",
            attempt=retry_state.attempt_number,
            delay_s=round(retry_state.next_action.sleep, 2) if retry_state.next_action else 0,
            status=get_status_code(error) if error else None,
            error=str(error),
        )

    def _retrying(self) -> AsyncRetrying:
        initial = self.settings.retry_initial_delay_ms / 1000
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.retry_max_attempts)),
            wait=wait_exponential(multiplier=initial, max=self.settings.retry_max_delay_ms / 1000)
            + wait_random(0, initial * 0.3),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def _attempt(
        self,
        api_call: Callable[[str], Awaitable[T]],
        model: str,
        auth_type: str | None,
        state: _ChainState,
    ) -> T:
        current_model = self.session.model_for_attempt(model, self.settings)
        try:
            return await api_call(current_model)
        except Exception as e:
            if get_status_code(e) != 429:
                state.consecutive_429 = 0
                raise

            state.consecutive_429 += 1
            if state.consecutive_429 < self.settings.retry_persistent_429_threshold:
                raise

            self.session.quota_error_occurred = True
            intent = await self.handle_fallback(current_model, auth_type, e)
            if intent == "retry":
                raise _FallbackActivated() from e
            if intent in ("stop", "auth"):
                raise _StopChain(e) from e
            raise

    async def run(
        self,
        api_call: Callable[[str], Awaitable[T]],
        model: str,
        auth_type: str | None = None,
    ) -> T:
        """Invoke ``api_call(model)`` with retries.

        ``api_call`` receives the model to dispatch to on each attempt, which
        is the fallback model whenever the session is in fallback mode.
        """
        auth_type = auth_type or self.settings.auth_type
        while True:
            state = _ChainState()
            try:
                async for attempt in self._retrying():
                    with attempt:
                        result = await self._attempt(api_call, model, auth_type, state)
                return result
            except _FallbackActivated:
                logger.info(
                    "Restarting model call on fallback model",
                    model=self.settings.fallback_model,
                )
                continue
            except _StopChain as stop:
                raise stop.error


class RetryingContentGenerator(ContentGenerator):
    """Content generator whose calls go through a RetryFallbackCoordinator."""

    def __init__(self, generator: ContentGenerator, coordinator: RetryFallbackCoordinator):
        self.generator = generator
        self.coordinator = coordinator

    async def generate(self, request: GenerateContentRequest, prompt_id: str) -> GenerateContentResponse:
        async def api_call(model: str) -> GenerateContentResponse:
            return await self.generator.generate(dataclasses.replace(request, model=model), prompt_id)

        return await self.coordinator.run(api_call, request.model)
