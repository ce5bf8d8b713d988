import asyncio
from unittest.mock import MagicMock

import pytest

from batch_review.llm.errors import LLMError, RateLimitError, TransientNetworkError
from batch_review.review.failures import (
    ErrorKind,
    calculate_backoff,
    calculate_batch_delay,
    classify_error,
    is_rate_limit_error,
)


class _StatusError(Exception):
    def __init__(self, message, **attrs):
        super().__init__(message)
        for name, value in attrs.items():
            setattr(self, name, value)


@pytest.mark.parametrize("error", [
    RateLimitError(),
    _StatusError("throttled", status=429),
    _StatusError("throttled", code="429"),
    Exception("Rate limit reached for requests"),
    Exception("HTTP 429 Too Many Requests"),
    Exception("Monthly quota exceeded"),
    Exception("RESOURCE EXHAUSTED"),
])
def test_rate_limit_detection(error):
    assert is_rate_limit_error(error)
    assert classify_error(error) == ErrorKind.RATE_LIMIT


@pytest.mark.parametrize("error", [
    LLMError("internal server error", status_code=500),
    TransientNetworkError("connection reset"),
    ValueError("bad payload"),
    asyncio.TimeoutError(),
])
def test_other_errors_are_transient(error):
    assert not is_rate_limit_error(error)
    assert classify_error(error) == ErrorKind.TRANSIENT


@pytest.mark.parametrize("batch_count,expected", [(0, 2000), (3, 3200), (5, 4000), (20, 8000), (100, 8000)])
def test_batch_delay(batch_count, expected):
    assert calculate_batch_delay(batch_count, 2000) == expected


def test_batch_delay_scales_with_base():
    assert calculate_batch_delay(5, 0) == 0
    assert calculate_batch_delay(5, 1000) == 2000


def test_backoff_doubles_and_caps():
    rng = MagicMock()
    rng.uniform.return_value = 0.0

    delays = [calculate_backoff(a, 5000, 60000, 1000, rng) for a in (1, 2, 5, 10)]

    assert delays == [5000, 10000, 60000, 60000]
    rng.uniform.assert_called_with(0, 1000)


def test_backoff_adds_jitter():
    rng = MagicMock()
    rng.uniform.return_value = 250.0

    assert calculate_backoff(1, 5000, 60000, 1000, rng) == 5250.0


def test_backoff_jitter_stays_in_range():
    for attempt in range(1, 6):
        delay = calculate_backoff(attempt, 100, 1000, 50)
        assert min(100 * 2 ** (attempt - 1), 1000) <= delay <= min(100 * 2 ** (attempt - 1), 1000) + 50
