"""
Service-layer integrations (model API, persistence).
"""

from .llm_client import (  # noqa: F401
    ContextLengthExceededError,
    LLMCallError,
    LLMError,
    LLMOutputError,
    OpenAITextGenerator,
    TextGenerator,
    create_llm_client,
    parse_structured_output,
)
from .store import InMemoryReviewStore, ReviewStore  # noqa: F401

__all__ = [
    "ContextLengthExceededError",
    "InMemoryReviewStore",
    "LLMCallError",
    "LLMError",
    "LLMOutputError",
    "OpenAITextGenerator",
    "ReviewStore",
    "TextGenerator",
    "create_llm_client",
    "parse_structured_output",
]
