"""Three-layer dedup stack: exact URL, structural pattern, DOM near-duplicate.

:meth:`DedupStack.register` is the main mutator. Each call runs in one
critical section and either records the URL in every layer and returns an
``Enqueue`` decision, or leaves every layer untouched (a capped pattern
only bumps its skip counter). :meth:`DedupStack.release` rolls an
accepted registration back when the frontier refuses the URL.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
import logging
import threading
from typing import Any

from ..errors import InvalidUrlError
from ..observability.metrics import DEDUP_DECISIONS
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize
from ..utils.url_classifier import ValueType, value_type_for
from .dom_embedding import DEFAULT_DIMENSION, DEFAULT_THRESHOLD, DomEmbeddingIndex, SimilarityMatch, to_sparse
from .pattern_registry import PatternRegistry, structural_pattern
from .visited_set import VisitedSet


logger = logging.getLogger(__name__)


class DecisionKind(str, Enum):
    ENQUEUE = "enqueue"
    DUPLICATE_EXACT = "duplicate_exact"
    PATTERN_CAPPED = "pattern_capped"
    NEAR_DUPLICATE = "near_duplicate"


@dataclass(slots=True, frozen=True)
class Decision:
    kind: DecisionKind
    pattern: str = ""
    other_url: str = ""
    similarity: float = 0.0

    @property
    def accepted(self) -> bool:
        return self.kind == DecisionKind.ENQUEUE

    @classmethod
    def enqueue(cls) -> Decision:
        return cls(DecisionKind.ENQUEUE)

    @classmethod
    def duplicate_exact(cls) -> Decision:
        return cls(DecisionKind.DUPLICATE_EXACT)

    @classmethod
    def pattern_capped(cls, pattern: str) -> Decision:
        return cls(DecisionKind.PATTERN_CAPPED, pattern=pattern)

    @classmethod
    def near_duplicate(cls, other_url: str, similarity: float) -> Decision:
        return cls(DecisionKind.NEAR_DUPLICATE, other_url=other_url, similarity=similarity)


class DedupStack:
    """Owner of the visited set, pattern registry and DOM embedding index.

    Safe to share between worker tasks and threads; concurrent ``register``
    calls for one URL yield exactly one ``Enqueue``.
    """

    def __init__(
        self,
        *,
        caps: dict[ValueType, int] | None = None,
        dom_enabled: bool = True,
        dom_dimension: int = DEFAULT_DIMENSION,
        dom_threshold: float = DEFAULT_THRESHOLD,
        expected_urls: int = 100_000,
    ) -> None:
        self.visited = VisitedSet(expected_items=expected_urls)
        self.patterns = PatternRegistry(caps)
        self.dom_enabled = dom_enabled
        self.dom_index = DomEmbeddingIndex(dimension=dom_dimension, threshold=dom_threshold)
        self._lock = threading.Lock()
        self._decisions: Counter[str] = Counter()

    def register(
        self,
        url: CanonicalUrl | str,
        *,
        value_type: ValueType | None = None,
        from_form: bool = False,
        content: str | bytes | None = None,
    ) -> Decision:
        """Decide whether ``url`` may enter the frontier.

        Args:
            url: Canonical URL (a string is canonicalized first)
            value_type: Cap class; derived from the URL when omitted
            from_form: URL is a form action, which selects the ``form`` cap
            content: Optional fetched body for the near-duplicate layer
        """
        canonical = url if isinstance(url, CanonicalUrl) else canonicalize(url)
        key = canonical.serialize()
        kind = value_type or value_type_for(key, from_form=from_form)
        pattern = structural_pattern(canonical)

        sparse = None
        if content is not None and self.dom_enabled:
            sparse = to_sparse(self.dom_index.embed(content))

        with self._lock:
            if key in self.visited:
                decision = Decision.duplicate_exact()
            elif not self.patterns.would_accept(pattern, kind):
                self.patterns.record_skip(pattern)
                decision = Decision.pattern_capped(pattern.text)
            else:
                match = self.dom_index.best_match(key, sparse) if sparse else None
                if match is not None:
                    decision = Decision.near_duplicate(match.url, match.similarity)
                else:
                    self.visited.add(key)
                    self.patterns.record(pattern, kind, key)
                    if sparse:
                        self.dom_index.store(key, sparse)
                    decision = Decision.enqueue()
            self._decisions[decision.kind.value] += 1

        DEDUP_DECISIONS.labels(decision=decision.kind.value).inc()
        if decision.kind == DecisionKind.PATTERN_CAPPED:
            logger.debug(f"Pattern cap reached for {pattern.key}: skipped {key}")
        return decision

    def release(self, url: CanonicalUrl | str) -> None:
        """Undo an accepted :meth:`register` whose URL never reached the frontier."""
        canonical = url if isinstance(url, CanonicalUrl) else canonicalize(url)
        key = canonical.serialize()
        with self._lock:
            if key not in self.visited:
                return
            self.visited.discard(key)
            self.patterns.unrecord(structural_pattern(canonical), key)
            self.dom_index.discard(key)
        logger.debug(f"Released dedup registration for {key}")

    def check_near_duplicate(self, url: str, content: str | bytes) -> SimilarityMatch | None:
        """DOM layer alone, for pages already admitted and now fetched."""
        if not self.dom_enabled:
            return None
        sparse = to_sparse(self.dom_index.embed(content))
        if not sparse:
            return None
        with self._lock:
            match = self.dom_index.best_match(url, sparse)
            if match is None:
                self.dom_index.store(url, sparse)
            else:
                self._decisions[DecisionKind.NEAR_DUPLICATE.value] += 1
        if match is not None:
            DEDUP_DECISIONS.labels(decision=DecisionKind.NEAR_DUPLICATE.value).inc()
        return match

    def preload(self, urls: Iterable[str]) -> int:
        """Seed the exact and pattern layers from a checkpoint without applying caps."""
        loaded = 0
        with self._lock:
            for raw in urls:
                try:
                    canonical = canonicalize(raw)
                except InvalidUrlError:
                    logger.warning(f"Skipping unparseable checkpoint URL: {raw!r}")
                    continue
                key = canonical.serialize()
                if self.visited.add(key):
                    self.patterns.record(structural_pattern(canonical), value_type_for(key), key)
                    loaded += 1
        logger.info(f"Preloaded {loaded} URLs into the dedup stack")
        return loaded

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return url in self.visited

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "visited": len(self.visited),
                "decisions": dict(self._decisions),
                **self.patterns.get_stats(),
                "dom": self.dom_index.get_stats(),
            }
