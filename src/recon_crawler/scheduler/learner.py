"""Adaptive tuning of the frontier weights from crawl results.

Every fetched page gets a 0-100 value from what it yielded (APIs, forms,
links, status). Once at least 20 results were seen, each 50th result
triggers an evaluation whose rules may scale individual weights:

- high-value rate below 20%: raise ``path_value`` by ``1 + lr``
- API discovery rate above 30%: raise ``params`` by ``1 + lr``
- low-value rate above 50%: lower ``depth`` by ``1 - lr/2``
- success rate below 70%: raise ``internal`` by ``1 + 0.8 lr``

Rules compose multiplicatively within one evaluation and every weight
stays within [0.1, 100].
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any

from ..domain.models import PageResult
from ..observability.metrics import WEIGHT_ADJUSTMENTS
from .frontier import Frontier
from .weights import WeightVector


logger = logging.getLogger(__name__)

DEFAULT_LEARNING_RATE = 0.15
MIN_SAMPLES = 20
EVALUATION_INTERVAL = 50
HIGH_VALUE_THRESHOLD = 80
MID_VALUE_THRESHOLD = 50


def evaluate_value(result: PageResult) -> float:
    """0-100 value of one page based on its artifacts and status."""
    value = 50.0
    if result.apis:
        value += 20
    if result.forms:
        value += 15
    if len(result.links) > 10:
        value += 10
    elif len(result.links) > 5:
        value += 5
    if result.status == 200:
        value += 5
    elif result.status >= 400:
        value -= 20
    return min(100.0, max(0.0, value))


def value_tier(result: PageResult, value: float | None = None) -> str:
    """``high``, ``mid`` or ``low``.

    A page that yielded no links, forms or APIs is ``low`` whatever its
    status: it contributed nothing to the crawl.
    """
    if not (result.links or result.forms or result.apis):
        return "low"
    value = evaluate_value(result) if value is None else value
    if value >= HIGH_VALUE_THRESHOLD:
        return "high"
    if value >= MID_VALUE_THRESHOLD:
        return "mid"
    return "low"


@dataclass(slots=True)
class LearnerStats:
    total: int = 0
    high: int = 0
    mid: int = 0
    low: int = 0
    links: int = 0
    apis: int = 0
    forms: int = 0
    successes: int = 0

    @property
    def high_value_rate(self) -> float:
        return self.high / self.total if self.total else 0.0

    @property
    def low_value_rate(self) -> float:
        return self.low / self.total if self.total else 0.0

    @property
    def api_rate(self) -> float:
        return self.apis / self.total if self.total else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.total if self.total else 0.0

    @property
    def avg_links_per_page(self) -> float:
        return self.links / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.update(
            high_value_rate=round(self.high_value_rate, 4),
            low_value_rate=round(self.low_value_rate, 4),
            api_rate=round(self.api_rate, 4),
            success_rate=round(self.success_rate, 4),
        )
        return data


@dataclass(slots=True, frozen=True)
class WeightAdjustment:
    iteration: int
    reasons: tuple[str, ...]
    old_weights: WeightVector
    new_weights: WeightVector
    performance: dict[str, float] = field(default_factory=dict)
    at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "reasons": list(self.reasons),
            "old_weights": self.old_weights.to_dict(),
            "new_weights": self.new_weights.to_dict(),
            "performance": dict(self.performance),
            "at": self.at,
        }


class AdaptiveLearner:
    """Feed it page results; it rewrites the frontier's weights in place."""

    def __init__(self, frontier: Frontier, *, learning_rate: float = DEFAULT_LEARNING_RATE) -> None:
        if not 0 < learning_rate <= 1:
            learning_rate = DEFAULT_LEARNING_RATE
        self.frontier = frontier
        self.learning_rate = learning_rate
        self.stats = LearnerStats()
        self.adjustments: list[WeightAdjustment] = []
        self._lock = threading.Lock()

    def observe(self, result: PageResult) -> WeightAdjustment | None:
        """Record one result and run an evaluation when one is due."""
        value = evaluate_value(result)
        tier = value_tier(result, value)
        with self._lock:
            stats = self.stats
            stats.total += 1
            setattr(stats, tier, getattr(stats, tier) + 1)
            stats.links += len(result.links)
            stats.apis += len(result.apis)
            stats.forms += len(result.forms)
            if 200 <= result.status < 300:
                stats.successes += 1
            if stats.total >= MIN_SAMPLES and stats.total % EVALUATION_INTERVAL == 0:
                return self._adjust()
        return None

    def _adjust(self) -> WeightAdjustment | None:
        stats = self.stats
        lr = self.learning_rate
        factors: dict[str, float] = {}
        reasons: list[str] = []

        if stats.high_value_rate < 0.2:
            factors["path_value"] = 1 + lr
            reasons.append(f"high-value rate {stats.high_value_rate:.1%} is low; raising path_value")
        if stats.api_rate > 0.3:
            factors["params"] = 1 + lr
            reasons.append(f"API rate {stats.api_rate:.1%} is high; raising params")
        if stats.low_value_rate > 0.5:
            factors["depth"] = 1 - lr * 0.5
            reasons.append(f"low-value rate {stats.low_value_rate:.1%} is high; lowering depth")
        if stats.success_rate < 0.7:
            factors["internal"] = 1 + lr * 0.8
            reasons.append(f"success rate {stats.success_rate:.1%} is low; raising internal")

        if not factors:
            return None

        old = self.frontier.weights
        new = old.scaled(**factors)
        self.frontier.set_weights(new)
        adjustment = WeightAdjustment(
            iteration=len(self.adjustments) + 1,
            reasons=tuple(reasons),
            old_weights=old,
            new_weights=new,
            performance={
                "high_value_rate": stats.high_value_rate,
                "api_rate": stats.api_rate,
                "avg_links_per_page": stats.avg_links_per_page,
                "success_rate": stats.success_rate,
            },
        )
        self.adjustments.append(adjustment)
        for name in factors:
            WEIGHT_ADJUSTMENTS.labels(weight=name).inc()
        logger.info(f"Adjusted weights (#{adjustment.iteration}): {'; '.join(reasons)}")
        return adjustment

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            data = self.stats.to_dict()
            data["adjustment_count"] = len(self.adjustments)
            return data
