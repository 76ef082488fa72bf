"""Crawl state aggregate and its lifecycle state machine.

::

    init --start--> running --pause--> paused --resume--> running
                    running --complete--> completed
                    running --fail(reason)--> failed
                    paused  --save--> paused (checkpoint)

``completed`` and ``failed`` are terminal. Every transition and every
checkpoint refreshes ``last_update_time``. The dict form produced by
:meth:`CrawlState.to_dict` is the on-disk checkpoint schema.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from ..errors import InvalidStateTransitionError
from .models import Form


class CrawlStatus(str, Enum):
    """Lifecycle states of a crawl."""

    INIT = "init"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {CrawlStatus.COMPLETED, CrawlStatus.FAILED}

    @property
    def can_resume(self) -> bool:
        # A checkpoint left in ``running`` means the process died without pausing
        return self in {CrawlStatus.PAUSED, CrawlStatus.RUNNING}


_ALLOWED_TRANSITIONS: dict[CrawlStatus, frozenset[CrawlStatus]] = {
    CrawlStatus.INIT: frozenset({CrawlStatus.RUNNING, CrawlStatus.FAILED}),
    CrawlStatus.RUNNING: frozenset({CrawlStatus.PAUSED, CrawlStatus.COMPLETED, CrawlStatus.FAILED}),
    CrawlStatus.PAUSED: frozenset({CrawlStatus.RUNNING, CrawlStatus.FAILED}),
    CrawlStatus.COMPLETED: frozenset(),
    CrawlStatus.FAILED: frozenset(),
}


@dataclass(slots=True)
class StateTransition:
    previous: str
    new: str
    occurred_at: datetime
    reason: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return _now()
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class CrawlState:
    """Aggregate root for everything a resume needs."""

    task_id: str
    target_url: str
    max_depth: int
    status: CrawlStatus = CrawlStatus.INIT
    start_time: datetime = field(default_factory=_now)
    last_update_time: datetime = field(default_factory=_now)
    current_depth: int = 0
    total_crawled: int = 0
    total_failed: int = 0
    visited_urls: dict[str, bool] = field(default_factory=dict)
    pending_urls: list[str] = field(default_factory=list)
    failed_urls: dict[str, str] = field(default_factory=dict)
    discovered_urls: list[str] = field(default_factory=list)
    discovered_forms: list[Form] = field(default_factory=list)
    discovered_apis: list[str] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    statistics: dict[str, Any] = field(default_factory=dict)
    custom_data: dict[str, Any] = field(default_factory=dict)
    transitions: list[StateTransition] = field(default_factory=list)
    _discovered_index: set[str] = field(default_factory=set, init=False, repr=False)
    _api_index: set[str] = field(default_factory=set, init=False, repr=False)

    @classmethod
    def create_new(
        cls,
        task_id: str,
        target_url: str,
        *,
        max_depth: int,
        config: dict[str, Any] | None = None,
    ) -> CrawlState:
        return cls(task_id=task_id, target_url=target_url, max_depth=max_depth, config=dict(config or {}))

    # --- lifecycle -------------------------------------------------------

    def start(self) -> None:
        self._transition_to(CrawlStatus.RUNNING)

    def pause(self) -> None:
        self._transition_to(CrawlStatus.PAUSED)

    def resume(self) -> None:
        if not self.status.can_resume:
            raise InvalidStateTransitionError(f"Cannot resume a crawl in status {self.status.value}")
        self._transition_to(CrawlStatus.RUNNING)

    def complete(self) -> None:
        self._transition_to(CrawlStatus.COMPLETED)

    def fail(self, reason: str) -> None:
        self.custom_data["failure_reason"] = reason
        self._transition_to(CrawlStatus.FAILED, reason=reason)

    @property
    def failure_reason(self) -> str | None:
        return self.custom_data.get("failure_reason")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> timedelta:
        return self.last_update_time - self.start_time

    def _transition_to(self, new_status: CrawlStatus, *, reason: str = "") -> None:
        if self.status == new_status:
            self.touch()
            return
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        previous = self.status
        self.status = new_status
        self.touch()
        self.transitions.append(
            StateTransition(
                previous=previous.value,
                new=new_status.value,
                occurred_at=self.last_update_time,
                reason=reason,
            )
        )

    def touch(self) -> None:
        self.last_update_time = _now()

    # --- progress bookkeeping -------------------------------------------

    def mark_visited(self, url: str, *, depth: int = 0) -> None:
        if url in self.visited_urls:
            return
        self.visited_urls[url] = True
        self.total_crawled += 1
        if self.failed_urls.pop(url, None) is not None:
            self.custom_data.get("failed_depths", {}).pop(url, None)
        self.current_depth = max(self.current_depth, depth)

    def mark_failed(self, url: str, error: str, *, depth: int | None = None) -> None:
        if url not in self.failed_urls:
            self.total_failed += 1
        self.failed_urls[url] = error
        if depth is not None:
            self.custom_data.setdefault("failed_depths", {})[url] = depth

    def add_discovered(self, urls: Iterable[str]) -> None:
        for url in urls:
            if url not in self._discovered_index:
                self._discovered_index.add(url)
                self.discovered_urls.append(url)

    def add_forms(self, forms: Iterable[Form]) -> None:
        known = set(self.discovered_forms)
        for form in forms:
            if form not in known:
                known.add(form)
                self.discovered_forms.append(form)

    def add_apis(self, apis: Iterable[str]) -> None:
        for api in apis:
            if api not in self._api_index:
                self._api_index.add(api)
                self.discovered_apis.append(api)

    def set_pending(self, entries: Iterable[tuple[str, int]]) -> None:
        """Record the frontier as ``(url, depth)`` pairs in discovery order."""
        self.pending_urls = []
        depths: dict[str, int] = {}
        for url, depth in entries:
            if url in depths:
                continue
            depths[url] = depth
            self.pending_urls.append(url)
        self.custom_data["pending_depths"] = depths

    def pending_with_depths(self) -> list[tuple[str, int]]:
        depths = self.custom_data.get("pending_depths", {})
        return [(url, int(depths.get(url, self.current_depth))) for url in self.pending_urls]

    def failures_to_retry(self) -> list[tuple[str, int]]:
        """Failed URLs that were never fetched (transport errors), with their depths."""
        depths = self.custom_data.get("failed_depths", {})
        return [
            (url, int(depths.get(url, self.current_depth)))
            for url in self.failed_urls
            if url not in self.visited_urls
        ]

    def progress_percent(self) -> float:
        total = self.total_crawled + len(self.pending_urls)
        if total == 0:
            return 100.0 if self.status == CrawlStatus.COMPLETED else 0.0
        return round(100.0 * self.total_crawled / total, 2)

    # --- persistence -----------------------------------------------------

    def create_checkpoint(self) -> dict[str, Any]:
        """Snapshot for saving; a paused crawl stays paused (the ``save`` edge)."""
        self.touch()
        return self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "target_url": self.target_url,
            "start_time": self.start_time.isoformat(),
            "last_update_time": self.last_update_time.isoformat(),
            "status": self.status.value,
            "current_depth": self.current_depth,
            "max_depth": self.max_depth,
            "total_crawled": self.total_crawled,
            "total_failed": self.total_failed,
            "visited_urls": dict(self.visited_urls),
            "pending_urls": list(self.pending_urls),
            "failed_urls": dict(self.failed_urls),
            "discovered_urls": list(self.discovered_urls),
            "discovered_forms": [form.to_dict() for form in self.discovered_forms],
            "discovered_apis": list(self.discovered_apis),
            "config": dict(self.config),
            "statistics": dict(self.statistics),
            "custom_data": dict(self.custom_data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrawlState:
        state = cls(
            task_id=data["task_id"],
            target_url=data["target_url"],
            max_depth=int(data.get("max_depth", 0)),
            status=CrawlStatus(data.get("status", CrawlStatus.INIT.value)),
            start_time=_parse_time(data.get("start_time")),
            last_update_time=_parse_time(data.get("last_update_time")),
            current_depth=int(data.get("current_depth", 0)),
            total_crawled=int(data.get("total_crawled", 0)),
            total_failed=int(data.get("total_failed", 0)),
            visited_urls={url: bool(flag) for url, flag in (data.get("visited_urls") or {}).items()},
            pending_urls=list(data.get("pending_urls") or []),
            failed_urls=dict(data.get("failed_urls") or {}),
            config=dict(data.get("config") or {}),
            statistics=dict(data.get("statistics") or {}),
            custom_data=dict(data.get("custom_data") or {}),
        )
        state.add_discovered(data.get("discovered_urls") or [])
        state.add_forms(Form.from_dict(item) for item in data.get("discovered_forms") or [])
        state.add_apis(data.get("discovered_apis") or [])
        return state
