"""DOM structure embeddings for near-duplicate page detection.

Each element contributes one unit to a bucket picked from an FNV-1a hash
of its tag, identifying attributes and leading text, scaled by depth and
tag weights. Pages rendered from one template land in mostly the same
buckets, so their normalized vectors have a high cosine similarity even
when the visible text differs.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import threading

from bs4 import BeautifulSoup, Tag


logger = logging.getLogger(__name__)

FNV64_OFFSET = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

DEFAULT_DIMENSION = 256
DEFAULT_THRESHOLD = 0.85
DEFAULT_DEPTH_WEIGHT = 1.5
# Exponent ceiling keeps the projected bucket index an exact float integer
MAX_DEPTH_EXPONENT = 24

TAG_WEIGHTS: dict[str, float] = {
    "title": 2.0,
    "h1": 1.8,
    "h2": 1.6,
    "h3": 1.4,
    "form": 1.5,
    "input": 1.3,
    "button": 1.3,
    "a": 1.2,
}

_IDENTITY_ATTRS = ("id", "class", "name", "type", "href", "src")


def fnv1a_64(data: bytes) -> int:
    h = FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK64
    return h


def _node_signature(node: Tag) -> str:
    parts = [node.name]
    for attr in _IDENTITY_ATTRS:
        value = node.get(attr)
        if value:
            if isinstance(value, list):
                value = " ".join(value)
            parts.append(f"{attr}={value}")
    own_text = "".join(node.find_all(string=True, recursive=False)).strip()
    if own_text:
        parts.append(f"text={own_text[:50]}")
    return "|".join(parts)


def compute_embedding(
    html: str | bytes,
    *,
    dimension: int = DEFAULT_DIMENSION,
    depth_weight: float = DEFAULT_DEPTH_WEIGHT,
) -> list[float]:
    """L2-normalized embedding of the DOM in ``html``; all zeros for an empty document."""
    soup = BeautifulSoup(html, "lxml")
    vector = [0.0] * dimension

    stack: list[tuple[Tag, int]] = [(child, 0) for child in reversed(soup.find_all(recursive=False))]
    while stack:
        node, depth = stack.pop()
        h = fnv1a_64(_node_signature(node).encode("utf-8", "replace")) & 0xFFFFFFFF
        scale = depth_weight ** min(depth, MAX_DEPTH_EXPONENT) * TAG_WEIGHTS.get(node.name, 1.0)
        vector[int(h * scale) % dimension] += 1.0
        stack.extend((child, depth + 1) for child in reversed(node.find_all(recursive=False)))

    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0
    dot_product = sum(a * b for a, b in zip(vec1, vec2, strict=True))
    magnitude1 = math.sqrt(sum(a * a for a in vec1))
    magnitude2 = math.sqrt(sum(b * b for b in vec2))
    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0
    return dot_product / (magnitude1 * magnitude2)


def to_sparse(vector: list[float]) -> dict[int, float]:
    return {index: value for index, value in enumerate(vector) if value}


@dataclass(slots=True, frozen=True)
class SimilarityMatch:
    url: str
    similarity: float


class DomEmbeddingIndex:
    """Stored embeddings keyed by URL.

    Only pages that were not near-duplicates are stored, so one template
    is represented by the first page rendered from it.
    """

    def __init__(
        self,
        *,
        dimension: int = DEFAULT_DIMENSION,
        threshold: float = DEFAULT_THRESHOLD,
        depth_weight: float = DEFAULT_DEPTH_WEIGHT,
    ) -> None:
        self.dimension = dimension
        self.threshold = threshold
        self.depth_weight = depth_weight
        # Stored vectors are unit length; keep their non-zero buckets only
        self._embeddings: dict[str, dict[int, float]] = {}
        self._lock = threading.Lock()
        self.checked = 0
        self.similar = 0

    def embed(self, html: str | bytes) -> list[float]:
        return compute_embedding(html, dimension=self.dimension, depth_weight=self.depth_weight)

    def check(self, url: str, html: str | bytes) -> SimilarityMatch | None:
        """Return the best stored match at or above the threshold, else store ``url``."""
        sparse = to_sparse(self.embed(html))
        if not sparse:
            return None
        with self._lock:
            match = self.best_match(url, sparse)
            if match is None:
                self.store(url, sparse)
        return match

    def best_match(self, url: str, sparse: dict[int, float]) -> SimilarityMatch | None:
        """Best stored match for ``sparse``; callers hold the lock guarding the index."""
        self.checked += 1
        best: SimilarityMatch | None = None
        for other_url, other in self._embeddings.items():
            if other_url == url:
                continue
            small, large = (sparse, other) if len(sparse) <= len(other) else (other, sparse)
            similarity = sum(value * large.get(index, 0.0) for index, value in small.items())
            if similarity >= self.threshold and (best is None or similarity > best.similarity):
                best = SimilarityMatch(other_url, similarity)
        if best is not None:
            self.similar += 1
            logger.debug(f"Near-duplicate page {url} ~ {best.url} ({best.similarity:.3f})")
        return best

    def store(self, url: str, sparse: dict[int, float]) -> None:
        if sparse:
            self._embeddings[url] = sparse

    def discard(self, url: str) -> None:
        self._embeddings.pop(url, None)

    def __len__(self) -> int:
        return len(self._embeddings)

    def get_stats(self) -> dict[str, int]:
        return {"stored": len(self._embeddings), "checked": self.checked, "similar": self.similar}
