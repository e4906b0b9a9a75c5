"""
LLM module: wire types and the content generator contract.

The orchestrator never talks to a provider SDK directly; hosts supply a
``ContentGenerator`` implementation.
"""

from .base import (
    Content,
    ContentGenerator,
    FunctionCall,
    FunctionResponse,
    GenerateContentConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    Part,
    PartListUnion,
    get_status_code,
    to_json,
)

__all__ = [
    "Content",
    "ContentGenerator",
    "FunctionCall",
    "FunctionResponse",
    "GenerateContentConfig",
    "GenerateContentRequest",
    "GenerateContentResponse",
    "Part",
    "PartListUnion",
    "get_status_code",
    "to_json",
]
