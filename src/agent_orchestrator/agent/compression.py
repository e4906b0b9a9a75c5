"""
Chat Compression - summarize older history to stay inside the context window.

When the prompt token count reported for the session crosses a fraction of
the model's token limit, the oldest part of the curated history is sent to
the model for summarization and replaced by that summary.

Key rules:
- The split point is always at a plain user entry, so a function call is
  never separated from its function response
- A rebuild that is not smaller than the original is discarded
- A failed automatic attempt disables further automatic attempts for the
  rest of the chat; forced attempts are always allowed
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from ..config import Settings
from ..llm.base import (
    Content,
    ContentGenerator,
    GenerateContentConfig,
    GenerateContentRequest,
    to_json,
)
from ..models import token_limit
from .chat import Chat
from .events import ChatCompressionInfo, CompressionStatus
from .prompts import COMPRESSION_ACK, COMPRESSION_REQUEST, get_compression_prompt
from .session import Session
from .usage import TokenUsageTracker

logger = structlog.get_logger()

# Approximate characters per token
CHARS_PER_TOKEN = 4

# Compress when this fraction of the token limit is in use
DEFAULT_COMPRESSION_THRESHOLD = 0.7

# Fraction of the latest history kept verbatim
COMPRESSION_PRESERVE_THRESHOLD = 0.3

ChatBuilder = Callable[[list[Content]], Awaitable[Chat]]


@dataclass
class CompressionOutcome:
    """Compression info plus the rebuilt chat when it should be adopted."""

    info: ChatCompressionInfo
    chat: Chat | None = None


def estimate_tokens(history: list[Content]) -> int:
    """Estimate token count for a history from its serialized length."""
    return sum(len(to_json(c)) for c in history) // CHARS_PER_TOKEN


def find_compress_split_point(contents: list[Content], fraction: float) -> int:
    """Index of the oldest entry to keep when compressing.

    May return ``len(contents)``, meaning everything can be compressed.
    """
    if fraction <= 0 or fraction >= 1:
        raise ValueError("Fraction must be between 0 and 1")

    char_counts = [len(to_json(c)) for c in contents]
    target_char_count = sum(char_counts) * fraction

    last_split_point = 0  # compressing nothing is always valid
    cumulative_char_count = 0
    for i, content in enumerate(contents):
        if content.role == "user" and not content.has_function_response:
            if cumulative_char_count >= target_char_count:
                return i
            last_split_point = i
        cumulative_char_count += char_counts[i]

    # No split point past the target; everything is safe to compress only
    # if the history ends on a finished model answer
    last = contents[-1] if contents else None
    if last is not None and last.role == "model" and not last.has_function_call:
        return len(contents)

    return last_split_point


class CompressionEngine:
    """Decides whether and how to compact a chat's history."""

    def __init__(
        self,
        settings: Settings,
        session: Session,
        content_generator: ContentGenerator,
        usage: TokenUsageTracker,
        chat_builder: ChatBuilder,
    ):
        self.settings = settings
        self.session = session
        self.content_generator = content_generator
        self.usage = usage
        self.chat_builder = chat_builder

    @property
    def threshold(self) -> float:
        configured = self.settings.chat_compression.context_percentage_threshold
        return configured if configured is not None else DEFAULT_COMPRESSION_THRESHOLD

    async def compress(self, chat: Chat, prompt_id: str, force: bool = False) -> CompressionOutcome:
        """Try to compress ``chat``.

        Returns the outcome; ``outcome.chat`` is set only when the rebuilt
        chat should replace the live one.
        """
        # Before routing runs an 'auto' model is resolved to the default
        model = self.session.effective_model_for_limit_check(self.settings)

        curated_history = chat.get_history(curated=True)

        if not curated_history or (self.session.compression_disabled and not force):
            return CompressionOutcome(ChatCompressionInfo(0, 0, CompressionStatus.NOOP))

        original_token_count = self.usage.last_prompt_token_count

        if not force and original_token_count < self.threshold * token_limit(model):
            return CompressionOutcome(
                ChatCompressionInfo(original_token_count, original_token_count, CompressionStatus.NOOP)
            )

        split_point = find_compress_split_point(
            curated_history, 1 - COMPRESSION_PRESERVE_THRESHOLD
        )
        history_to_compress = curated_history[:split_point]
        history_to_keep = curated_history[split_point:]

        if not history_to_compress:
            return CompressionOutcome(
                ChatCompressionInfo(original_token_count, original_token_count, CompressionStatus.NOOP)
            )

        logger.info(
            "Starting chat compression",
            prompt_id=prompt_id,
            model=model,
            forced=force,
            entries_compressed=len(history_to_compress),
            entries_kept=len(history_to_keep),
        )

        summary_response = await self.content_generator.generate(
            GenerateContentRequest(
                model=model,
                contents=[*history_to_compress, Content.user_text(COMPRESSION_REQUEST)],
                config=GenerateContentConfig(system_instruction=get_compression_prompt()),
            ),
            prompt_id,
        )
        summary = summary_response.text or ""

        new_chat = await self.chat_builder([
            Content.user_text(summary),
            Content.model_text(COMPRESSION_ACK),
            *history_to_keep,
        ])
        new_token_count = estimate_tokens(new_chat.get_history())

        logger.info(
            "Chat compression",
            prompt_id=prompt_id,
            tokens_before=original_token_count,
            tokens_after=new_token_count,
        )

        if new_token_count >= original_token_count:
            if not force:
                self.session.compression_disabled = True
            logger.warning(
                "Compression inflated token count, keeping original chat",
                tokens_before=original_token_count,
                tokens_after=new_token_count,
            )
            return CompressionOutcome(
                ChatCompressionInfo(
                    original_token_count, new_token_count, CompressionStatus.FAILED_INFLATED
                )
            )

        self.usage.set_last_prompt_token_count(new_token_count)
        return CompressionOutcome(
            ChatCompressionInfo(original_token_count, new_token_count, CompressionStatus.COMPRESSED),
            chat=new_chat,
        )
