"""Unit tests for sharepoint/retries.py and sharepoint/rate_limit.py."""
from __future__ import annotations

import asyncio
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from spconflict.sharepoint.rate_limit import AsyncTokenBucket
from spconflict.sharepoint.retries import compute_backoff, should_retry

# ---------------------------------------------------------------------------
# should_retry
# ---------------------------------------------------------------------------


class TestShouldRetry:
    def test_last_attempt_never_retries(self):
        assert should_retry(503, None, attempt=2, max_attempts=3) is False

    def test_single_attempt_budget(self):
        assert should_retry(429, None, attempt=0, max_attempts=1) is False

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert should_retry(status, None, attempt=0, max_attempts=3) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 412])
    def test_client_errors_not_retried(self, status):
        assert should_retry(status, None, attempt=0, max_attempts=3) is False

    def test_timeout_is_retryable(self):
        exc = httpx.ReadTimeout("timed out", request=MagicMock())
        assert should_retry(None, exc, attempt=0, max_attempts=3) is True

    def test_network_error_is_retryable(self):
        assert should_retry(None, httpx.ConnectError("refused"), attempt=0, max_attempts=3) is True

    def test_other_exception_not_retryable(self):
        assert should_retry(None, ValueError("x"), attempt=0, max_attempts=3) is False

    def test_nothing_to_go_on(self):
        assert should_retry(None, None, attempt=0, max_attempts=3) is False


# ---------------------------------------------------------------------------
# compute_backoff
# ---------------------------------------------------------------------------


class TestComputeBackoff:
    def test_exponential_without_jitter(self):
        assert [compute_backoff(a, base=1.0, jitter=False) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        assert compute_backoff(10, base=1.0, maximum=30.0, jitter=False) == 30.0

    def test_retry_after_wins(self):
        assert compute_backoff(0, base=1.0, jitter=False, retry_after=12.0) == 12.0

    def test_retry_after_not_capped(self):
        assert compute_backoff(0, maximum=5.0, jitter=False, retry_after=60.0) == 60.0

    def test_jitter_range(self):
        for _ in range(50):
            delay = compute_backoff(2, base=1.0, jitter=True)
            assert 2.0 <= delay <= 4.0

    def test_jitter_uses_random(self):
        with patch("spconflict.sharepoint.retries.random.random", return_value=0.0):
            assert compute_backoff(1, base=1.0, jitter=True) == 1.0


# ---------------------------------------------------------------------------
# AsyncTokenBucket
# ---------------------------------------------------------------------------


class TestAsyncTokenBucket:
    def test_invalid_rate(self):
        with pytest.raises(ValueError, match="rate_rps"):
            AsyncTokenBucket(rate_rps=0)

    def test_invalid_burst(self):
        with pytest.raises(ValueError, match="burst"):
            AsyncTokenBucket(rate_rps=1, burst=0)

    async def test_burst_is_free(self):
        bucket = AsyncTokenBucket(rate_rps=1, burst=3)
        waits = [await bucket.acquire() for _ in range(3)]
        assert waits == [0.0, 0.0, 0.0]

    async def test_waits_when_empty(self):
        bucket = AsyncTokenBucket(rate_rps=100, burst=1)
        await bucket.acquire()
        start = time.monotonic()
        wait = await bucket.acquire()
        assert wait > 0
        assert time.monotonic() - start >= wait * 0.5

    async def test_concurrent_acquire(self):
        bucket = AsyncTokenBucket(rate_rps=100, burst=2)
        waits = await asyncio.gather(*(bucket.acquire() for _ in range(4)))
        assert waits[0] == waits[1] == 0.0
        assert waits[3] > 0
