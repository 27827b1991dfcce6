"""Sliding-window limiter for node starts.

Keeps a log of start timestamps for the last window (one minute by default)
in a pyrate-limiter in-memory bucket. Before a node starts, expired entries
are pruned; when the window already holds ``requests_per_minute`` starts,
the caller sleeps until the oldest one leaves the window. This throttles the
rate of starts, not concurrency.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from pyrate_limiter import InMemoryBucket, Rate, RateItem

logger = logging.getLogger(__name__)

WINDOW_MS = 60_000


class SlidingWindowRateLimiter:
    """
    Async sliding-window rate limiter.

    Example:
        limiter = SlidingWindowRateLimiter(requests_per_minute=60)
        await limiter.acquire("fetch_weather")  # may sleep
    """

    def __init__(
        self,
        requests_per_minute: int,
        window_ms: int = WINDOW_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")

        self.requests_per_minute = requests_per_minute
        self.window_ms = window_ms
        self._clock = clock
        self._rate = Rate(requests_per_minute, window_ms)
        self._bucket = InMemoryBucket([self._rate])
        # Waiters are served one at a time so starts keep arrival order
        self._lock = asyncio.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def in_window(self) -> int:
        """Number of starts currently inside the window."""
        self._bucket.leak(self._now_ms())
        return self._bucket.count()

    def _wait_ms(self, now_ms: int) -> int:
        oldest = self._bucket.peek(self._rate.limit - 1)
        if oldest is None:
            return 0
        return max(oldest.timestamp + self.window_ms - now_ms, 1)

    async def acquire(self, name: str = "node") -> float:
        """Record one start, sleeping first if the window is full.

        Returns:
            Milliseconds spent waiting.
        """
        waited_ms = 0.0
        async with self._lock:
            while True:
                now = self._now_ms()
                self._bucket.leak(now)
                if self._bucket.put(RateItem(name, now)):
                    return waited_ms

                delay_ms = self._wait_ms(now)
                logger.debug(
                    f"Rate limit reached ({self.requests_per_minute}/window), "
                    f"delaying '{name}' {delay_ms}ms",
                    extra={"node": name},
                )
                await asyncio.sleep(delay_ms / 1000)
                waited_ms += delay_ms

    def reset(self) -> None:
        self._bucket.flush()
