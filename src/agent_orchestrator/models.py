"""
Model identifiers and per-model limits.
"""

DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_FLASH_MODEL = "gemini-2.5-flash"

# Sentinel meaning "let the router decide"
DEFAULT_MODEL_AUTO = "auto"

DEFAULT_THINKING_BUDGET = 8192

DEFAULT_TOKEN_LIMIT = 1_048_576

_TOKEN_LIMITS: dict[str, int] = {
    "gemini-1.5-pro": 2_097_152,
    "gemini-1.5-flash": 1_048_576,
    "gemini-2.0-flash": 1_048_576,
    "gemini-2.0-flash-lite": 1_048_576,
    "gemini-2.5-pro": 1_048_576,
    "gemini-2.5-flash": 1_048_576,
    "gemini-2.5-flash-lite": 1_048_576,
    "gemini-2.0-flash-preview-image-generation": 32_000,
}


def token_limit(model: str) -> int:
    """Get the context window size in tokens for a model."""
    return _TOKEN_LIMITS.get(model, DEFAULT_TOKEN_LIMIT)


def is_thinking_supported(model: str) -> bool:
    return model.startswith("gemini-2.5") or model == DEFAULT_MODEL_AUTO


def get_effective_model(
    in_fallback_mode: bool,
    requested_model: str,
    fallback_model: str = DEFAULT_FLASH_MODEL,
) -> str:
    """Substitute the fallback model while the session runs in fallback mode.

    Lite models are already the cheapest tier and are left alone.
    """
    if not in_fallback_mode:
        return requested_model
    if "lite" in requested_model:
        return requested_model
    return fallback_model
