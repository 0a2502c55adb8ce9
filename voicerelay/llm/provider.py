"""Completion message type and error hierarchy."""

from dataclasses import dataclass

from ..errors import RelayError


# ════════════════════════════════════════════════════════
# Completion exception hierarchy — classify errors by type,
# not by string matching.  The dispatcher catches these.
# ════════════════════════════════════════════════════════

class CompletionError(RelayError):
    """Base class for completion service errors (network, parse, HTTP)."""
    pass

class CompletionRateLimitError(CompletionError):
    """429 — rate limited."""
    pass

class CompletionAuthError(CompletionError):
    """401/403 — authentication or authorization failure."""
    pass

class CompletionBadRequestError(CompletionError):
    """400 — bad request (malformed messages, context too long)."""
    pass

class CompletionServerError(CompletionError):
    """5xx or any other unexpected HTTP status."""
    pass


@dataclass
class ChatMessage:
    role: str           # 'system', 'user', 'assistant'
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}
