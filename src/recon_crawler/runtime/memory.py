"""Process memory readings for the soft memory cap."""

from __future__ import annotations

import os
from pathlib import Path
import resource
import sys


_STATM = Path("/proc/self/statm")


def current_rss_mb() -> float:
    """Resident set size in MiB; peak RSS where the current value is unavailable."""
    try:
        pages = int(_STATM.read_text().split()[1])
        return pages * os.sysconf("SC_PAGE_SIZE") / (1024 * 1024)
    except (OSError, ValueError, IndexError):
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # ru_maxrss is bytes on macOS and KiB elsewhere
        return peak / (1024 * 1024) if sys.platform == "darwin" else peak / 1024


class MemoryGuard:
    """Answer "over the soft cap?" without sampling on every call."""

    def __init__(self, soft_cap_mb: float, *, sample_every: int = 25) -> None:
        self.soft_cap_mb = soft_cap_mb
        self.sample_every = max(1, sample_every)
        self._calls = 0
        self._over = False
        self.last_rss_mb = 0.0

    def over_cap(self) -> bool:
        if self._calls % self.sample_every == 0:
            self.last_rss_mb = current_rss_mb()
            self._over = self.last_rss_mb > self.soft_cap_mb
        self._calls += 1
        return self._over
