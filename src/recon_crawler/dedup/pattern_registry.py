"""Structural URL patterns and the per-pattern cap registry.

``/p-1.html``, ``/p-2.html`` and ``/p-377.html`` are one pattern
(``/p-{num}.html``); crawling a handful of them says as much as crawling
all of them. Query values are blanked so ``?id=1`` and ``?id=2`` collapse
as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any

from ..utils.url_canonicalizer import CanonicalUrl
from ..utils.url_classifier import ValueType


logger = logging.getLogger(__name__)

MAX_SAMPLES = 10

DEFAULT_CAPS: dict[ValueType, int] = {
    ValueType.API: 5,
    ValueType.FORM: 5,
    ValueType.NORMAL: 3,
    ValueType.IMAGE: 2,
    ValueType.STATIC: 1,
}

_DIGITS_RE = re.compile(r"^\d+$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_HASH_RE = re.compile(r"^[0-9a-fA-F]{24,}$")
_SEPARATED_NUM_RE = re.compile(r"^(.+?)([-_])(\d+)(\.\w+)?$")


def generalize_segment(segment: str) -> str:
    """Replace the variable part of one path segment with a placeholder.

    Digits glued to letters (``v1``, ``2fa``) stay literal: they name
    versions and features rather than record ids.
    """
    if not segment:
        return segment
    if _DIGITS_RE.match(segment):
        return "{num}"
    if _UUID_RE.match(segment):
        return "{uuid}"
    if _HASH_RE.match(segment):
        return "{hash}"
    match = _SEPARATED_NUM_RE.match(segment)
    if match:
        return f"{match.group(1)}{match.group(2)}{{num}}{match.group(4) or ''}"
    return segment


@dataclass(slots=True, frozen=True)
class StructuralPattern:
    """Pattern of a canonical URL.

    ``key`` includes the origin and is what the registry counts on;
    ``text`` is the path-and-query form reported in decisions.
    """

    origin: str
    path: str
    query: str = ""

    @property
    def text(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def key(self) -> str:
        return f"{self.origin}{self.text}"

    def __str__(self) -> str:
        return self.text


def structural_pattern(url: CanonicalUrl) -> StructuralPattern:
    path = "/".join(generalize_segment(segment) for segment in url.path.split("/"))
    query = "&".join(f"{key}=" for key in url.query_keys)
    return StructuralPattern(origin=url.origin, path=path or "/", query=query)


@dataclass(slots=True)
class PatternEntry:
    pattern: StructuralPattern
    value_type: ValueType
    cap: int
    first_url: str
    count: int = 0
    skipped: int = 0
    samples: list[str] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return self.count >= self.cap

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern.key,
            "value_type": self.value_type.value,
            "cap": self.cap,
            "count": self.count,
            "skipped": self.skipped,
            "first_url": self.first_url,
            "samples": list(self.samples),
        }


class PatternRegistry:
    """Count accepted URLs per structural pattern.

    Not synchronized; :class:`~recon_crawler.dedup.stack.DedupStack` calls
    it from inside its critical section. The cap of a pattern is fixed by
    the type of the first URL seen for it.
    """

    def __init__(self, caps: dict[ValueType, int] | None = None) -> None:
        self.caps = dict(DEFAULT_CAPS)
        if caps:
            self.caps.update(caps)
        self._entries: dict[str, PatternEntry] = {}

    def would_accept(self, pattern: StructuralPattern, value_type: ValueType) -> bool:
        entry = self._entries.get(pattern.key)
        if entry is None:
            return self.caps[value_type] > 0
        return not entry.is_full

    def record(self, pattern: StructuralPattern, value_type: ValueType, url: str) -> PatternEntry:
        """Count ``url`` against its pattern; callers check :meth:`would_accept` first."""
        entry = self._entries.get(pattern.key)
        if entry is None:
            entry = PatternEntry(pattern=pattern, value_type=value_type, cap=self.caps[value_type], first_url=url)
            self._entries[pattern.key] = entry
        entry.count += 1
        if len(entry.samples) < MAX_SAMPLES:
            entry.samples.append(url)
        return entry

    def unrecord(self, pattern: StructuralPattern, url: str) -> None:
        """Undo a :meth:`record` of ``url``; a pattern left at zero is dropped."""
        entry = self._entries.get(pattern.key)
        if entry is None:
            return
        entry.count = max(0, entry.count - 1)
        if url in entry.samples:
            entry.samples.remove(url)
        if entry.count == 0 and not entry.skipped:
            del self._entries[pattern.key]

    def record_skip(self, pattern: StructuralPattern) -> None:
        entry = self._entries.get(pattern.key)
        if entry is not None:
            entry.skipped += 1

    def get(self, pattern: StructuralPattern) -> PatternEntry | None:
        return self._entries.get(pattern.key)

    def entries(self) -> list[PatternEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, int]:
        entries = self._entries.values()
        return {
            "patterns": len(self._entries),
            "full_patterns": sum(1 for entry in entries if entry.is_full),
            "skipped": sum(entry.skipped for entry in entries),
        }
