"""
Configuration management for the agent orchestrator.

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_FLASH_MODEL, DEFAULT_MODEL, DEFAULT_MODEL_AUTO


class ChatCompressionConfig(BaseModel):
    """Configuration for chat history compression."""

    context_percentage_threshold: float | None = Field(
        default=None,
        description="Fraction of the model token limit that triggers compression",
    )

    @field_validator("context_percentage_threshold")
    @classmethod
    def check_threshold(cls, v: float | None) -> float | None:
        if v is not None and not 0 < v <= 1:
            raise ValueError("context_percentage_threshold must be in (0, 1]")
        return v


class Settings(BaseSettings):
    """Main orchestrator settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    session_id: str = Field(default="default-session", description="Identifier of the agent session")
    debug: bool = False
    log_level: str = "INFO"
    target_dir: str = Field(default=".", description="Working directory the agent operates in")

    # Models
    model: str = Field(default=DEFAULT_MODEL_AUTO, description="Configured model, or 'auto' to defer to the router")
    default_model: str = DEFAULT_MODEL
    fallback_model: str = DEFAULT_FLASH_MODEL
    auth_type: Literal["oauth-personal", "api-key", "vertex-ai", "cloud-shell"] = "api-key"

    # Session behaviour
    max_session_turns: int = Field(default=-1, description="Max turns per session, -1 for unlimited")
    skip_next_speaker_check: bool = False
    continue_on_failed_api_call: bool = True
    ide_mode: bool = False
    chat_compression: ChatCompressionConfig = Field(default_factory=ChatCompressionConfig)

    # Memory loaded from hierarchical context files by the host
    user_memory: str = ""

    # Retry
    retry_max_attempts: int = Field(default=5, description="Max attempts per model call")
    retry_initial_delay_ms: int = Field(default=5000, description="Initial backoff delay")
    retry_max_delay_ms: int = Field(default=30000, description="Backoff delay cap")
    retry_persistent_429_threshold: int = Field(
        default=2,
        description="Consecutive 429 responses before the fallback hook is invoked",
    )

    @field_validator("model", mode="before")
    @classmethod
    def parse_model(cls, v: str) -> str:
        v = v.strip() if v else ""
        return v or DEFAULT_MODEL_AUTO

    @property
    def uses_auto_model(self) -> bool:
        """Whether model choice is deferred to the router."""
        return self.model == DEFAULT_MODEL_AUTO

    @property
    def resolved_model(self) -> str:
        """The configured model with the 'auto' sentinel resolved to the default."""
        return self.default_model if self.uses_auto_model else self.model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
