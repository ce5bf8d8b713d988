"""
LLM integration module for code review.

This module provides:
- Finding schemas returned by review ports
- Review context building and prompt rendering
- Review clients (Anthropic/OpenAI)
"""

from batch_review.llm.errors import LLMError, RateLimitError, ResponseParseError, TransientNetworkError
from batch_review.llm.model import ReviewClient, ReviewPort, get_review_client
from batch_review.llm.prompts import ContextBuilder, ReviewContext
from batch_review.llm.schemas import (
    Finding,
    Guideline,
    LLMConfig,
    ReviewResult,
    ReviewRule,
    Severity,
)

__all__ = [
    "ContextBuilder",
    "Finding",
    "Guideline",
    "LLMConfig",
    "LLMError",
    "RateLimitError",
    "ResponseParseError",
    "ReviewClient",
    "ReviewContext",
    "ReviewPort",
    "ReviewResult",
    "ReviewRule",
    "Severity",
    "TransientNetworkError",
    "get_review_client",
]
