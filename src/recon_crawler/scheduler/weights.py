"""Priority weights and the frontier score function.

::

    score = w_depth * 1/max(depth, 1)
          + w_internal * [host is target or a subdomain]
          + w_params * params_bonus(n_params)
          + w_recent * 0.5
          + w_path_value * path_value(path)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from ..utils.url_canonicalizer import CanonicalUrl


MIN_WEIGHT = 0.1
MAX_WEIGHT = 100.0
RECENT_FACTOR = 0.5
DEFAULT_PATH_VALUE = 0.5

# Checked in order; the first tier with a substring match wins
PATH_VALUE_TIERS: tuple[tuple[float, tuple[str, ...]], ...] = (
    (
        3.0,
        (
            "admin", "phpmyadmin", "cpanel", "login", "auth", "token", "key", "secret",
            ".env", "config", "backup", "database", "dump", "export", "phpinfo",
        ),
    ),
    (
        2.0,
        (
            "api", "graphql", "rest", "manage", "upload", "download", "file", "editor",
            "dashboard", "user", "account", "profile", "payment", "order",
        ),
    ),
    (
        1.0,
        (
            "search", "register", "signup", "contact", "message", "cart", "checkout",
            "product", "category", "post", "article", "comment", "setting", "preference",
        ),
    ),
    (0.3, ("about", "help", "faq", "terms", "privacy", "image", "img", "css", "js", "static")),
)  # fmt: skip


@dataclass(slots=True, frozen=True)
class WeightVector:
    """Immutable weight set; updates replace the whole vector."""

    depth: float = 3.0
    internal: float = 2.0
    params: float = 1.5
    recent: float = 1.0
    path_value: float = 4.0

    def clamped(self) -> WeightVector:
        return WeightVector(
            **{f.name: min(MAX_WEIGHT, max(MIN_WEIGHT, getattr(self, f.name))) for f in fields(self)}
        )

    def scaled(self, **factors: float) -> WeightVector:
        """Multiply named components and clamp the result."""
        return replace(self, **{name: getattr(self, name) * factor for name, factor in factors.items()}).clamped()

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeightVector:
        known = {f.name for f in fields(cls)}
        return cls(**{key: float(value) for key, value in data.items() if key in known}).clamped()


def path_value(path: str) -> float:
    lowered = path.lower()
    for value, keywords in PATH_VALUE_TIERS:
        if any(keyword in lowered for keyword in keywords):
            return value
    return DEFAULT_PATH_VALUE


def params_bonus(n_params: int) -> float:
    if n_params <= 0:
        return 0.0
    if n_params == 1:
        return 1.0
    if n_params == 2:
        return 1.5
    return 2.0


def score(weights: WeightVector, url: CanonicalUrl, depth: int, *, is_internal: bool) -> float:
    return (
        weights.depth * (1.0 / max(depth, 1))
        + (weights.internal if is_internal else 0.0)
        + weights.params * params_bonus(url.param_count)
        + weights.recent * RECENT_FACTOR
        + weights.path_value * path_value(url.path)
    )
