"""
Failure classification and retry arithmetic for batch execution.

Keeps the decision of *what kind* of failure happened, and how long to
wait before the next attempt, separate from the network call itself.
"""

import asyncio
import random
from enum import Enum
from typing import Optional

RATE_LIMIT_STATUS = 429

RATE_LIMIT_MARKERS = (
    "rate limit",
    "too many requests",
    "quota exceeded",
    "resource exhausted",
)


class ErrorKind(str, Enum):
    """How the engine should recover from a failed batch."""
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    CIRCUIT_BROKEN = "circuit_broken"


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Detect provider throttling.

    A 429 status on ``status_code``, ``status`` or ``code``, or a message
    naming a rate or quota limit, counts as a rate limit.
    """
    if _status_of(error) == RATE_LIMIT_STATUS:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def classify_error(error: BaseException) -> ErrorKind:
    """Map a failed call to the recovery path the engine takes."""
    if isinstance(error, asyncio.TimeoutError):
        return ErrorKind.TRANSIENT
    if is_rate_limit_error(error):
        return ErrorKind.RATE_LIMIT
    return ErrorKind.TRANSIENT


def calculate_batch_delay(batch_count: int, base_delay_ms: int = 2000) -> int:
    """
    Pause between batches in milliseconds.

    Grows with the number of batches, capped at four times the base.
    """
    return int(base_delay_ms * (1 + min(batch_count / 5, 3)))


def calculate_backoff(
    attempt: int,
    base_ms: int = 5000,
    max_ms: int = 60000,
    jitter_ms: int = 1000,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Exponential backoff with jitter for rate-limit retry ``attempt`` (1-based).

    Returns:
        float: Delay in milliseconds
    """
    rng = rng or random
    return min(base_ms * 2 ** (attempt - 1), max_ms) + rng.uniform(0, jitter_ms)
