"""Exact visited set keyed on canonical URL strings."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .bloom_filter import BloomFilter


class VisitedSet:
    """Bloom-fronted exact set.

    ``might_contain`` is a lock-free hint; ``__contains__`` is the exact
    answer and must be read under the owner's lock when racing ``add``.
    """

    def __init__(self, expected_items: int = 100_000) -> None:
        self._bloom = BloomFilter(expected_items=expected_items)
        self._urls: set[str] = set()

    def might_contain(self, url: str) -> bool:
        return url in self._bloom

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and url in self._bloom and url in self._urls

    def add(self, url: str) -> bool:
        """Add ``url``; return False when it was already present."""
        if url in self._urls:
            return False
        self._urls.add(url)
        self._bloom.add(url)
        return True

    def discard(self, url: str) -> None:
        """Forget ``url``; its bloom bits stay set."""
        self._urls.discard(url)

    def update(self, urls: Iterable[str]) -> int:
        return sum(1 for url in urls if self.add(url))

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(self._urls)
