"""
Session orchestrator - drives one agent session across many model calls.

For each request it:
1. Enforces the session turn budget and the context window
2. Compresses history when it grows too large
3. Injects editor context without splitting a pending tool call
4. Pins a model for the sequence and runs one streamed turn
5. Watches the stream for loops and invalid responses
6. Lets the model keep speaking when the next-speaker check says so

Continuations (next-speaker and invalid-stream retries) run as further
iterations of one loop, so the caller sees a single flat event stream.
"""

import copy
import dataclasses
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import structlog

from ..config import Settings, get_settings
from ..llm.base import (
    Content,
    ContentGenerator,
    GenerateContentConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    Part,
    PartListUnion,
)
from ..models import DEFAULT_THINKING_BUDGET, is_thinking_supported
from .cancellation import AbortController, CancelSignal
from .chat import Chat
from .compression import CompressionEngine
from .context_guard import estimate_request_tokens, remaining_token_count, will_overflow
from .environment import get_directory_context_string, get_environment_context
from .events import (
    ChatCompressionInfo,
    CompressionStatus,
    ContextWindowOverflow,
    EventType,
    StreamEvent,
)
from .ide_context import IdeContext, IdeContextDiffer
from .loop_detection import LoopDetector, NoopLoopDetector
from .next_speaker import NextSpeakerChecker, check_next_speaker
from .prompts import (
    CONTINUE_REQUEST,
    INVALID_STREAM_CONTINUE_REQUEST,
    SETUP_COMPLETE,
    get_core_system_prompt,
)
from .retry import FallbackHandler, RetryFallbackCoordinator, RetryingContentGenerator
from .routing import DefaultModelRouter, ModelRouter, RoutingContext
from .session import Session
from .turn import Turn, TurnFactory
from .usage import TokenUsageTracker

logger = structlog.get_logger()

# Hard ceiling on turns per send, including continuations
MAX_TURNS = 100

# Two initial attempts plus two after prompt injection
INVALID_STREAM_FAILURE_ATTEMPTS = 4


@dataclass
class _Continuation:
    request: PartListUnion
    turns: int
    is_invalid_stream_retry: bool = False


@dataclass
class _Step:
    turn: Turn | None = None
    continuation: _Continuation | None = None


class TurnStream:
    """Events of one send, in order; ``turn`` holds the top-level Turn once exhausted."""

    def __init__(self):
        self.turn: Turn | None = None
        self._events: AsyncIterator[StreamEvent] | None = None
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._events is None:
            raise RuntimeError("Stream not started")
        if self._consumed:
            raise RuntimeError("Stream already consumed")
        self._consumed = True
        return self._events

    async def collect(self) -> list[StreamEvent]:
        """Drain the stream into a list."""
        return [event async for event in self]


def _prompt_token_count(value: Any) -> int | None:
    if isinstance(value, dict):
        count = value.get("prompt_token_count")
    else:
        count = getattr(value, "prompt_token_count", None)
    return count if isinstance(count, int) else None


class SessionOrchestrator:
    """Main orchestrator for a single agent session.

    Exactly one top-level request may be in flight per instance; the host
    is responsible for serializing calls.
    """

    def __init__(
        self,
        content_generator: ContentGenerator | None,
        turn_factory: TurnFactory | None,
        settings: Settings | None = None,
        router: ModelRouter | None = None,
        loop_detector: LoopDetector | None = None,
        next_speaker_checker: NextSpeakerChecker | None = None,
        ide_context_provider: Callable[[], IdeContext | None] | None = None,
        fallback_handler: FallbackHandler | None = None,
        usage: TokenUsageTracker | None = None,
        tools: list[dict[str, Any]] | None = None,
    ):
        if content_generator is None:
            raise RuntimeError("Content generator not initialized")
        if turn_factory is None:
            raise RuntimeError("Turn factory not initialized")

        self.settings = settings or get_settings()
        self.content_generator = content_generator
        self.turn_factory = turn_factory
        self.session = Session(session_id=self.settings.session_id)
        self.usage = usage or TokenUsageTracker()
        self.router = router or DefaultModelRouter(self.settings, self.session)
        self.loop_detector = loop_detector or NoopLoopDetector()
        self.next_speaker_checker = next_speaker_checker or check_next_speaker
        self.ide_context_provider = ide_context_provider or (lambda: None)
        self.ide_differ = IdeContextDiffer(debug=self.settings.debug)
        self.retry = RetryFallbackCoordinator(self.session, self.settings, fallback_handler)
        self.retrying_generator = RetryingContentGenerator(content_generator, self.retry)
        self.compression = CompressionEngine(
            self.settings,
            self.session,
            self.retrying_generator,
            self.usage,
            self._build_chat,
        )
        self.tools = tools or []
        self.user_memory = self.settings.user_memory
        self.generate_content_config = GenerateContentConfig(temperature=0, top_p=1)
        self._chat: Chat | None = None

    # -- chat lifecycle -------------------------------------------------

    async def initialize(self) -> None:
        self._chat = await self.start_chat()

    def is_initialized(self) -> bool:
        return self._chat is not None

    def get_chat(self) -> Chat:
        if self._chat is None:
            raise RuntimeError("Chat not initialized")
        return self._chat

    async def start_chat(self, extra_history: list[Content] | None = None) -> Chat:
        """Create a fresh chat, opening with the environment handshake."""
        self.session.reset_chat_state()
        chat = await self._build_chat(extra_history)
        self.session.last_known_user_memory = self.user_memory
        return chat

    async def _build_chat(self, extra_history: list[Content] | None = None) -> Chat:
        history: list[Content] = []
        try:
            env_context = "\n\n".join(get_environment_context(self.settings))
            setup_text = f"{env_context}\n\n{SETUP_COMPLETE}".strip()
            history = [Content.user_text(setup_text), *(extra_history or [])]

            config = dataclasses.replace(
                self.generate_content_config,
                system_instruction=get_core_system_prompt(self.user_memory),
                tools=list(self.tools),
            )
            if is_thinking_supported(self.settings.model):
                config.include_thoughts = True
                config.thinking_budget = DEFAULT_THINKING_BUDGET

            return Chat(config=config, history=history)
        except Exception as e:
            logger.error(
                "Error initializing chat session",
                history_length=len(history),
                error=str(e),
            )
            raise RuntimeError(f"Failed to initialize chat: {e}") from e

    async def reset_chat(self) -> None:
        self._chat = await self.start_chat()

    async def add_history(self, content: Content) -> None:
        self.get_chat().add_history(content)

    def get_history(self, curated: bool = False) -> list[Content]:
        return self.get_chat().get_history(curated=curated)

    def set_history(self, history: list[Content]) -> None:
        self.get_chat().set_history(history)
        self.session.force_full_ide_context = True

    def strip_thoughts_from_history(self) -> None:
        self.get_chat().strip_thoughts_from_history()

    def set_tools(self, tools: list[dict[str, Any]]) -> None:
        self.tools = list(tools)
        self.get_chat().set_tools(self.tools)

    async def add_directory_context(self) -> None:
        if self._chat is None:
            return
        self._chat.add_history(Content.user_text(get_directory_context_string(self.settings)))

    def get_current_sequence_model(self) -> str | None:
        return self.session.sticky_model

    # -- compression ----------------------------------------------------

    async def try_compress_chat(self, prompt_id: str, force: bool = False) -> ChatCompressionInfo:
        """Compress the live chat if needed, adopting the rebuild on success."""
        outcome = await self.compression.compress(self.get_chat(), prompt_id, force)
        if outcome.chat is not None:
            self._chat = outcome.chat
            self.session.reset_chat_state()
            self.session.last_known_user_memory = self.user_memory
        return outcome.info

    # -- sending --------------------------------------------------------

    def send_message_stream(
        self,
        request: PartListUnion,
        signal: CancelSignal | None = None,
        prompt_id: str = "",
        turns: int = MAX_TURNS,
        is_invalid_stream_retry: bool = False,
    ) -> TurnStream:
        """Send a request and stream every event of the resulting exchange.

        The stream covers continuations too. Errors are reported as ERROR
        events rather than raised.
        """
        stream = TurnStream()
        stream._events = self._run(
            stream,
            _Continuation(request, turns, is_invalid_stream_retry),
            signal or CancelSignal(),
            prompt_id or self.session.last_prompt_id,
        )
        return stream

    async def _run(
        self,
        stream: TurnStream,
        pending: _Continuation | None,
        signal: CancelSignal,
        prompt_id: str,
    ) -> AsyncIterator[StreamEvent]:
        self.session.quota_error_occurred = False
        while pending is not None:
            step = _Step()
            async for event in self._send_once(pending, signal, prompt_id, step):
                yield event
            if stream.turn is None:
                stream.turn = step.turn
            pending = step.continuation

    def _new_turn(self, prompt_id: str) -> Turn:
        return self.turn_factory(self.get_chat(), prompt_id)

    def _refresh_system_instruction(self) -> None:
        # Rebuilding the instruction reads prompt files; only do it on change
        if self.user_memory != self.session.last_known_user_memory:
            self.session.last_known_user_memory = self.user_memory
            self.get_chat().set_system_instruction(get_core_system_prompt(self.user_memory))

    def _inject_ide_context(self, chat: Chat) -> None:
        parts, snapshot = self.ide_differ.get_context_parts(
            self.ide_context_provider(),
            self.session.last_sent_ide_context,
            self.session.force_full_ide_context or not chat.history,
        )
        if parts:
            chat.add_history(Content.user_text("\n".join(parts)))
        self.session.last_sent_ide_context = snapshot
        self.session.force_full_ide_context = False

    def _error_event(self, stage: str, error: Exception, prompt_id: str) -> StreamEvent:
        logger.error("Orchestration step failed", stage=stage, prompt_id=prompt_id, error=str(error))
        return StreamEvent(EventType.ERROR, {"message": str(error), "stage": stage})

    async def _send_once(
        self,
        pending: _Continuation,
        signal: CancelSignal,
        prompt_id: str,
        step: _Step,
    ) -> AsyncIterator[StreamEvent]:
        session = self.session

        if session.begin_sequence(prompt_id):
            self.loop_detector.reset(prompt_id)

        session.start_turn()
        if session.exceeds_turn_limit(self.settings.max_session_turns):
            step.turn = self._new_turn(prompt_id)
            yield StreamEvent(EventType.MAX_SESSION_TURNS)
            return

        bounded_turns = min(pending.turns, MAX_TURNS)
        if bounded_turns <= 0:
            step.turn = self._new_turn(prompt_id)
            return

        model_for_limit_check = session.effective_model_for_limit_check(self.settings)
        estimated = estimate_request_tokens(pending.request)
        remaining = remaining_token_count(model_for_limit_check, self.usage.last_prompt_token_count)
        if will_overflow(estimated, remaining):
            step.turn = self._new_turn(prompt_id)
            yield StreamEvent(
                EventType.CONTEXT_WINDOW_WILL_OVERFLOW,
                ContextWindowOverflow(estimated, remaining),
            )
            return

        try:
            compressed = await self.try_compress_chat(prompt_id, force=False)
        except Exception as e:
            if signal.aborted:
                return
            step.turn = self._new_turn(prompt_id)
            yield self._error_event("compression", e, prompt_id)
            return
        if compressed.status == CompressionStatus.COMPRESSED:
            yield StreamEvent(EventType.CHAT_COMPRESSED, compressed)

        self._refresh_system_instruction()

        # A function response must immediately follow its function call, so
        # editor context waits until the pending call is answered
        chat = self.get_chat()
        if self.settings.ide_mode and not chat.has_pending_tool_call:
            self._inject_ide_context(chat)

        turn = self.turn_factory(chat, prompt_id)
        step.turn = turn

        controller = AbortController()
        linked_signal = CancelSignal.any(signal, controller.signal)

        if await self.loop_detector.turn_started(signal):
            yield StreamEvent(EventType.LOOP_DETECTED)
            return

        try:
            model = await session.resolve_model(
                self.router,
                RoutingContext(history=chat.get_history(curated=True), request=pending.request, signal=signal),
                self.settings,
            )
        except Exception as e:
            if signal.aborted:
                return
            yield self._error_event("routing", e, prompt_id)
            return

        model = session.model_for_attempt(model, self.settings)
        events = turn.run(model, pending.request, linked_signal)
        try:
            async for event in events:
                if self.loop_detector.add_and_check(event):
                    yield StreamEvent(EventType.LOOP_DETECTED)
                    controller.abort()
                    return

                if event.type == EventType.FINISHED:
                    count = _prompt_token_count(event.value)
                    if count is not None:
                        self.usage.set_last_prompt_token_count(count)

                yield event

                if event.type == EventType.INVALID_STREAM and self.settings.continue_on_failed_api_call:
                    if pending.is_invalid_stream_retry:
                        logger.warning(
                            "Content retry failed",
                            prompt_id=prompt_id,
                            attempts=INVALID_STREAM_FAILURE_ATTEMPTS,
                            error_type="FAILED_AFTER_PROMPT_INJECTION",
                            model=model,
                        )
                        return
                    step.continuation = _Continuation(
                        [Part(text=INVALID_STREAM_CONTINUE_REQUEST)],
                        bounded_turns - 1,
                        is_invalid_stream_retry=True,
                    )
                    return

                if event.type == EventType.ERROR:
                    return
        except Exception as e:
            if signal.aborted:
                return
            yield self._error_event("stream", e, prompt_id)
            return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        if turn.pending_tool_calls or signal.aborted:
            return
        if session.quota_error_occurred or self.settings.skip_next_speaker_check:
            return

        try:
            next_speaker = await self.next_speaker_checker(
                self.get_chat(), self.retrying_generator, signal, prompt_id
            )
        except Exception as e:
            if signal.aborted:
                return
            yield self._error_event("next_speaker", e, prompt_id)
            return

        logger.info(
            "Next speaker check",
            prompt_id=prompt_id,
            finish_reason=turn.finish_reason or "",
            result=next_speaker.next_speaker if next_speaker else "",
        )
        if next_speaker and next_speaker.next_speaker == "model":
            step.continuation = _Continuation([Part(text=CONTINUE_REQUEST)], bounded_turns - 1)

    # -- one-shot generation ----------------------------------------------

    async def generate_content(
        self,
        contents: list[Content],
        generation_config: GenerateContentConfig,
        signal: CancelSignal,
        model: str,
    ) -> GenerateContentResponse:
        """Non-streaming call with retry and quota fallback."""
        current_attempt_model = model
        config = dataclasses.replace(
            generation_config,
            system_instruction=get_core_system_prompt(self.user_memory),
            temperature=(
                generation_config.temperature
                if generation_config.temperature is not None
                else self.generate_content_config.temperature
            ),
            top_p=(
                generation_config.top_p
                if generation_config.top_p is not None
                else self.generate_content_config.top_p
            ),
        )

        async def api_call(model_to_use: str) -> GenerateContentResponse:
            nonlocal current_attempt_model
            current_attempt_model = model_to_use
            return await self.content_generator.generate(
                GenerateContentRequest(model=model_to_use, contents=copy.deepcopy(contents), config=config),
                self.session.last_prompt_id,
            )

        try:
            return await self.retry.run(api_call, model)
        except Exception as e:
            if signal.aborted:
                raise
            logger.error(
                "Error generating content via API",
                model=current_attempt_model,
                error=str(e),
            )
            raise RuntimeError(
                f"Failed to generate content with model {current_attempt_model}: {e}"
            ) from e
