"""Bounded async max-heap of URLs waiting to be fetched."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
import heapq
import itertools
import logging
import time
from typing import Any

from ..observability.metrics import FRONTIER_SIZE
from ..utils.url_canonicalizer import CanonicalUrl
from .weights import WeightVector, score


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FrontierEntry:
    url: CanonicalUrl
    depth: int
    score: float = 0.0
    discovered_by: str = "crawl"
    discovered_at: float = field(default_factory=time.time)
    from_form: bool = False

    @property
    def key(self) -> str:
        return self.url.serialize()

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.key,
            "depth": self.depth,
            "score": round(self.score, 4),
            "discovered_by": self.discovered_by,
        }


class FrontierClosed(Exception):
    """Raised by ``push`` once the frontier no longer accepts work."""


class Frontier:
    """Priority frontier shared by the harvester and the workers.

    Scores are computed at push time from the current weight vector. Equal
    scores pop in discovery order. ``pop`` suspends while the frontier is
    empty or paused and returns ``None`` once it is closed. ``push``
    suspends while the heap is full, for at most ``spill_after`` seconds;
    past that the entry goes to an overflow queue that refills the heap as
    entries are popped.

    Every pushed entry counts as unfinished until ``task_done`` is called
    for it, so ``join`` returns when nothing is queued or in flight.
    """

    def __init__(
        self,
        *,
        maxsize: int = 50_000,
        spill_after: float = 0.5,
        weights: WeightVector | None = None,
        is_internal: Callable[[str], bool] | None = None,
        task_label: str = "",
    ) -> None:
        self.maxsize = maxsize
        self.spill_after = spill_after
        self._weights = weights or WeightVector()
        self._is_internal = is_internal or (lambda host: True)
        self._task_label = task_label
        self._heap: list[tuple[float, int, FrontierEntry]] = []
        self._overflow: deque[FrontierEntry] = deque()
        self._seq = itertools.count()
        self._in_flight: dict[str, FrontierEntry] = {}
        self._unfinished = 0
        self._closed = False
        self._paused = False
        self._cond = asyncio.Condition()
        self._all_done = asyncio.Event()
        self._all_done.set()
        self.pushed = 0
        self.popped = 0
        self.spilled = 0

    @property
    def weights(self) -> WeightVector:
        return self._weights

    def set_weights(self, weights: WeightVector) -> None:
        """Swap in a new weight vector; queued entries keep their scores."""
        self._weights = weights

    def score_for(self, url: CanonicalUrl, depth: int) -> float:
        return score(self._weights, url, depth, is_internal=self._is_internal(url.host))

    async def push(
        self,
        url: CanonicalUrl,
        depth: int,
        *,
        discovered_by: str = "crawl",
        from_form: bool = False,
    ) -> FrontierEntry:
        entry = FrontierEntry(
            url=url,
            depth=depth,
            score=self.score_for(url, depth),
            discovered_by=discovered_by,
            from_form=from_form,
        )
        async with self._cond:
            try:
                await asyncio.wait_for(
                    self._cond.wait_for(lambda: self._closed or len(self._heap) < self.maxsize),
                    timeout=self.spill_after,
                )
            except asyncio.TimeoutError:
                pass
            if self._closed:
                raise FrontierClosed(entry.key)
            if len(self._heap) < self.maxsize:
                heapq.heappush(self._heap, (-entry.score, next(self._seq), entry))
            else:
                self._overflow.append(entry)
                self.spilled += 1
                if self.spilled == 1:
                    logger.warning(f"Frontier full at {self.maxsize} entries; spilling to overflow")
            self._unfinished += 1
            self._all_done.clear()
            self.pushed += 1
            self._cond.notify_all()
        self._report_size()
        return entry

    async def pop(self) -> FrontierEntry | None:
        """Highest-score entry, or ``None`` once closed."""
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or (self._heap and not self._paused))
            if self._closed:
                return None
            _, _, entry = heapq.heappop(self._heap)
            if self._overflow:
                spilled = self._overflow.popleft()
                heapq.heappush(self._heap, (-spilled.score, next(self._seq), spilled))
            self._in_flight[entry.key] = entry
            self.popped += 1
            self._cond.notify_all()
        self._report_size()
        return entry

    def task_done(self, entry: FrontierEntry) -> None:
        self._in_flight.pop(entry.key, None)
        self._unfinished = max(0, self._unfinished - 1)
        if self._unfinished == 0:
            self._all_done.set()

    async def join(self) -> None:
        """Wait until every pushed entry was popped and marked done."""
        await self._all_done.wait()

    async def close(self) -> None:
        """Stop handing out work and wake every waiter."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    async def pause(self) -> None:
        async with self._cond:
            self._paused = True

    async def resume(self) -> None:
        async with self._cond:
            self._paused = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def paused(self) -> bool:
        return self._paused

    def size(self) -> int:
        return len(self._heap) + len(self._overflow)

    def __len__(self) -> int:
        return self.size()

    def snapshot(self, *, include_in_flight: bool = True) -> list[FrontierEntry]:
        """Queued entries in pop order; in-flight entries first when included."""
        queued = [entry for _, _, entry in sorted(self._heap)] + list(self._overflow)
        if include_in_flight:
            return list(self._in_flight.values()) + queued
        return queued

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": self.size(),
            "overflow": len(self._overflow),
            "spilled": self.spilled,
            "in_flight": len(self._in_flight),
            "pushed": self.pushed,
            "popped": self.popped,
            "weights": self._weights.to_dict(),
        }

    def _report_size(self) -> None:
        FRONTIER_SIZE.labels(task=self._task_label).set(self.size())
