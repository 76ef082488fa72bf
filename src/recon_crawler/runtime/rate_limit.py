"""Global request pacing.

A single token bucket caps the crawl at ``rate`` requests per second with
a small burst. Throttling responses (429/503) temporarily lower the refill
rate; a streak of successes restores it step by step, never above the
configured rate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import time
from typing import Any


logger = logging.getLogger(__name__)

THROTTLE_STATUSES = frozenset({429, 503})


class TokenBucket:
    def __init__(
        self,
        rate: float = 20.0,
        burst: int | None = None,
        *,
        min_rate_fraction: float = 0.1,
        recovery_streak: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the bucket.

        Args:
            rate: Refill rate in tokens per second (the request ceiling)
            burst: Bucket capacity; ``rate / 10`` (at least 1) when omitted
            min_rate_fraction: Lowest refill rate throttling can reach, as a fraction of ``rate``
            recovery_streak: Successes needed before the rate is raised again
            clock: Monotonic time source
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = float(burst if burst is not None else max(1, int(rate / 10)))
        self.current_rate = rate
        self.min_rate = rate * min_rate_fraction
        self.recovery_streak = recovery_streak
        self._clock = clock
        self._tokens = self.capacity
        self._last = clock()
        self._lock = asyncio.Lock()
        self._successes = 0
        self.acquired = 0
        self.throttled = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.current_rate)

    async def acquire(self) -> None:
        """Wait for one token; waiters are served in arrival order."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    self.acquired += 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.current_rate)

    def record_response(self, status: int) -> None:
        if status in THROTTLE_STATUSES:
            self._successes = 0
            self.throttled += 1
            old_rate = self.current_rate
            self.current_rate = max(self.min_rate, self.current_rate / 2)
            logger.warning(f"Throttled (HTTP {status}); rate {old_rate:.2f}/s -> {self.current_rate:.2f}/s")
            return
        if self.current_rate >= self.rate:
            return
        self._successes += 1
        if self._successes >= self.recovery_streak:
            self._successes = 0
            self.current_rate = min(self.rate, self.current_rate / 0.9)
            logger.debug(f"Raised rate to {self.current_rate:.2f}/s after successful streak")

    def get_stats(self) -> dict[str, Any]:
        return {
            "rate": self.rate,
            "current_rate": round(self.current_rate, 3),
            "burst": self.capacity,
            "acquired": self.acquired,
            "throttled": self.throttled,
        }
