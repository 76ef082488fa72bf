"""Retry policy with exponential backoff and an adaptive request timeout."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
import random
from typing import TypeVar

from ..errors import FetchError
from ..observability.metrics import FETCH_RETRIES


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Back-off before retry ``attempt`` (1-based): ``base * multiplier**(attempt-1)`` with jitter."""
        delay = self.base_delay * self.multiplier ** max(0, attempt - 1)
        if self.jitter:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return min(self.max_delay, delay)

    def should_retry(self, error: FetchError, attempt: int) -> bool:
        return attempt <= self.max_retries and error.retryable

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "",
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> T:
        """Call ``operation`` until it succeeds or fails with a final error.

        Only :class:`FetchError` is retried, and only while ``retryable``.
        The last error is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except FetchError as exc:
                attempt += 1
                if not self.should_retry(exc, attempt):
                    raise
                delay = self.delay_for(attempt)
                FETCH_RETRIES.labels(kind=exc.kind.value).inc()
                logger.debug(f"Retry {attempt}/{self.max_retries} for {label} in {delay:.2f}s: {exc}")
                await sleep(delay)


class AdaptiveTimeout:
    """Per-request timeout of ``avg * 3 + 10s`` clamped to ``[base, maximum]``.

    The average covers the most recent ``window`` response times.
    """

    def __init__(self, base: float = 30.0, maximum: float = 120.0, *, window: int = 100) -> None:
        self.base = base
        self.maximum = max(base, maximum)
        self._samples: deque[float] = deque(maxlen=window)

    def record(self, elapsed_seconds: float) -> None:
        self._samples.append(max(0.0, elapsed_seconds))

    @property
    def average(self) -> float:
        return sum(self._samples) / len(self._samples) if self._samples else 0.0

    def current(self) -> float:
        if not self._samples:
            return self.base
        return min(self.maximum, max(self.base, self.average * 3 + 10))
