"""Bloom filter in front of the exact visited set.

Most candidate links were never seen before, so a cheap negative answer
avoids taking the dedup lock's exact-set path for them.
"""

from __future__ import annotations

import hashlib
import logging
import math
from typing import Any


logger = logging.getLogger(__name__)


class BloomFilter:
    """Fixed-size bloom filter over URL strings (false positives only)."""

    def __init__(self, expected_items: int = 100_000, false_positive_rate: float = 0.01) -> None:
        self.expected_items = max(1, expected_items)
        self.false_positive_rate = false_positive_rate
        self.bit_size = self._calculate_bit_size(self.expected_items, false_positive_rate)
        self.hash_count = self._calculate_hash_count(self.bit_size, self.expected_items)
        self.bit_array = bytearray(self.bit_size // 8 + 1)
        self.item_count = 0

        logger.debug(f"Bloom filter sized: {self.bit_size} bits, {self.hash_count} hashes")

    @staticmethod
    def _calculate_bit_size(n: int, p: float) -> int:
        return max(8, int(-n * math.log(p) / (math.log(2) ** 2)))

    @staticmethod
    def _calculate_hash_count(m: int, n: int) -> int:
        return max(1, int(m / n * math.log(2)))

    def _positions(self, item: str) -> list[int]:
        # Kirsch-Mitzenmacher: k positions from two 64-bit halves of one digest
        digest = hashlib.blake2b(item.encode("utf-8"), digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        return [(h1 + i * h2) % self.bit_size for i in range(self.hash_count)]

    def add(self, item: str) -> None:
        for bit_index in self._positions(item):
            self.bit_array[bit_index // 8] |= 1 << (bit_index % 8)
        self.item_count += 1

    def __contains__(self, item: str) -> bool:
        return all(self.bit_array[bit // 8] & (1 << (bit % 8)) for bit in self._positions(item))

    def get_stats(self) -> dict[str, Any]:
        return {
            "bit_size": self.bit_size,
            "hash_count": self.hash_count,
            "item_count": self.item_count,
            "memory_bytes": len(self.bit_array),
            "expected_false_positive_rate": self.false_positive_rate,
        }
