"""Tests for the sliding-window node-start limiter."""

import asyncio
import time

import pytest

from plangraph.runtime.rate_limiter import SlidingWindowRateLimiter


class TestSlidingWindowRateLimiter:
    @pytest.mark.asyncio
    async def test_starts_within_limit_do_not_wait(self):
        limiter = SlidingWindowRateLimiter(requests_per_minute=3)

        waits = [await limiter.acquire(f"n{i}") for i in range(3)]

        assert waits == [0, 0, 0]
        assert limiter.in_window == 3

    @pytest.mark.asyncio
    async def test_full_window_waits_for_oldest_to_expire(self):
        limiter = SlidingWindowRateLimiter(requests_per_minute=2, window_ms=100)

        await limiter.acquire("a")
        await limiter.acquire("b")
        started = time.perf_counter()
        waited = await limiter.acquire("c")
        elapsed_ms = (time.perf_counter() - started) * 1000

        assert waited > 0
        assert elapsed_ms >= 80

    @pytest.mark.asyncio
    async def test_expired_entries_are_pruned(self):
        limiter = SlidingWindowRateLimiter(requests_per_minute=1, window_ms=30)

        await limiter.acquire("a")
        await asyncio.sleep(0.05)

        assert limiter.in_window == 0
        assert await limiter.acquire("b") == 0

    @pytest.mark.asyncio
    async def test_injected_clock(self):
        now = [100.0]
        limiter = SlidingWindowRateLimiter(requests_per_minute=1, clock=lambda: now[0])

        await limiter.acquire("a")
        assert limiter.in_window == 1

        now[0] += 61
        assert limiter.in_window == 0

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = SlidingWindowRateLimiter(requests_per_minute=2)
        await limiter.acquire("a")
        limiter.reset()
        assert limiter.in_window == 0

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(requests_per_minute=0)
