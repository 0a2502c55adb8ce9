"""Completion service client."""

from .provider import (
    ChatMessage,
    CompletionError,
    CompletionRateLimitError,
    CompletionAuthError,
    CompletionBadRequestError,
    CompletionServerError,
)
from .openai import CompletionClient

__all__ = [
    "ChatMessage",
    "CompletionClient",
    "CompletionError",
    "CompletionRateLimitError",
    "CompletionAuthError",
    "CompletionBadRequestError",
    "CompletionServerError",
]
