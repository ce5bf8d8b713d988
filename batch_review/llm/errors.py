"""
Exceptions raised by review clients.

The execution engine classifies these into rate-limit and transient
failures; nothing here is retried by the engine itself.
"""

from typing import Optional


class LLMError(Exception):
    """Base exception for LLM-related errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(LLMError):
    """The provider rejected the call for rate or quota reasons."""

    def __init__(self, message: str = "Rate limit exceeded", status_code: Optional[int] = 429):
        super().__init__(message, status_code=status_code)


class ResponseParseError(LLMError):
    """The provider answered but the body could not be parsed as findings."""
    pass


class TransientNetworkError(LLMError):
    """Connection reset or timeout talking to the provider."""
    pass
