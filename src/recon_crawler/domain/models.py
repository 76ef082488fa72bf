"""Value objects flowing through the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


@dataclass(slots=True, frozen=True)
class FormField:
    """One input of an HTML form."""

    name: str
    type: str = "text"
    value: str | None = None
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "value": self.value, "required": self.required}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FormField:
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type") or "text"),
            value=data.get("value"),
            required=bool(data.get("required", False)),
        )


@dataclass(slots=True, frozen=True)
class Form:
    """A form discovered on a page or in captured traffic.

    ``action`` is the canonical URL string of the form target.
    """

    action: str
    method: str = "GET"
    fields: tuple[FormField, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "method": self.method,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Form:
        return cls(
            action=str(data.get("action", "")),
            method=str(data.get("method") or "GET").upper(),
            fields=tuple(FormField.from_dict(item) for item in data.get("fields", [])),
        )


@dataclass(slots=True)
class ExtractedArtifacts:
    """What extractors pull out of one response body."""

    links: list[str] = field(default_factory=list)
    assets: list[str] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    apis: list[str] = field(default_factory=list)
    subdomains: list[str] = field(default_factory=list)
    html_content: str | None = None

    def merge(self, other: ExtractedArtifacts) -> None:
        """Fold another extractor's output into this one, keeping first-seen order."""
        for mine, theirs in (
            (self.links, other.links),
            (self.assets, other.assets),
            (self.apis, other.apis),
            (self.subdomains, other.subdomains),
        ):
            seen = set(mine)
            for item in theirs:
                if item not in seen:
                    mine.append(item)
                    seen.add(item)
        known_forms = set(self.forms)
        self.forms.extend(form for form in other.forms if form not in known_forms)
        if self.html_content is None:
            self.html_content = other.html_content


@dataclass(slots=True)
class PageResult:
    """Outcome of fetching and extracting one frontier entry."""

    url: str
    final_url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str = ""
    body: bytes | None = None
    links: list[str] = field(default_factory=list)
    assets: list[str] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    apis: list[str] = field(default_factory=list)
    subdomains: list[str] = field(default_factory=list)
    depth: int = 0
    discovered_by: str = "crawl"
    value_type: str = "normal"
    is_static: bool = False
    static_reason: str = ""
    is_similar: bool = False
    similar_to: str | None = None
    similarity: float | None = None
    elapsed_ms: float = 0.0
    truncated: bool = False
    extractor_errors: list[str] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> dict[str, Any]:
        """Serializable view; the body is never included."""
        return {
            "url": self.url,
            "final_url": self.final_url,
            "status": self.status,
            "content_type": self.content_type,
            "headers": dict(self.headers),
            "links": list(self.links),
            "assets": list(self.assets),
            "forms": [form.to_dict() for form in self.forms],
            "apis": list(self.apis),
            "subdomains": list(self.subdomains),
            "depth": self.depth,
            "discovered_by": self.discovered_by,
            "value_type": self.value_type,
            "is_static": self.is_static,
            "static_reason": self.static_reason,
            "is_similar": self.is_similar,
            "similar_to": self.similar_to,
            "similarity": self.similarity,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "truncated": self.truncated,
            "extractor_errors": list(self.extractor_errors),
        }


@dataclass(slots=True, frozen=True)
class Finding:
    """A sensitive-information hit reported by an external scanner."""

    url: str
    kind: str
    value: str
    severity: str = "info"

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "kind": self.kind, "value": self.value, "severity": self.severity}


class ProgressKind(str, Enum):
    CRAWL_STARTED = "crawl_started"
    PAGE_DONE = "page_done"
    PAGE_FAILED = "page_failed"
    CHECKPOINT_SAVED = "checkpoint_saved"
    WEIGHTS_ADJUSTED = "weights_adjusted"
    CRAWL_FINISHED = "crawl_finished"


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """Structured progress narration delivered to sinks instead of stdout."""

    kind: ProgressKind
    detail: str = ""
    url: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "detail": self.detail, "url": self.url, "at": self.at.isoformat()}


@dataclass(slots=True)
class CrawlSummary:
    """End-of-crawl report handed to ``Sink.on_complete``."""

    task_id: str
    target_url: str
    status: str
    total_crawled: int
    total_failed: int
    duration_seconds: float
    discovered_urls: int
    forms: int
    apis: list[str] = field(default_factory=list)
    subdomains: list[str] = field(default_factory=list)
    external_links: list[str] = field(default_factory=list)
    cross_domain_js: list[str] = field(default_factory=list)
    hidden_paths: list[str] = field(default_factory=list)
    dedup_stats: dict[str, Any] = field(default_factory=dict)
    weights: dict[str, float] = field(default_factory=dict)
    weight_adjustments: list[dict[str, Any]] = field(default_factory=list)
    effective_params: dict[str, list[str]] = field(default_factory=dict)
    statistics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "target_url": self.target_url,
            "status": self.status,
            "total_crawled": self.total_crawled,
            "total_failed": self.total_failed,
            "duration_seconds": round(self.duration_seconds, 3),
            "discovered_urls": self.discovered_urls,
            "forms": self.forms,
            "apis": list(self.apis),
            "subdomains": list(self.subdomains),
            "external_links": list(self.external_links),
            "cross_domain_js": list(self.cross_domain_js),
            "hidden_paths": list(self.hidden_paths),
            "dedup_stats": dict(self.dedup_stats),
            "weights": dict(self.weights),
            "weight_adjustments": list(self.weight_adjustments),
            "effective_params": {url: list(params) for url, params in self.effective_params.items()},
            "statistics": dict(self.statistics),
        }
