"""Result sinks: JSONL stream, CSV table, HTML report and text summary.

File sinks append to their outputs and flush every ``flush_every``
entries or ``flush_seconds`` seconds, whichever comes first. Sinks are
only ever driven by their own emitter channel, so they need no locking.
The JSONL stream and HTML report are heavy sinks and never see
near-duplicate pages; the CSV table keeps one flagged row for them.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
import time
from typing import IO, Protocol, runtime_checkable

import orjson

from ..domain.models import CrawlSummary, Finding, PageResult, ProgressEvent, ProgressKind
from .report import ReportRow, render_report_html


logger = logging.getLogger(__name__)

CSV_COLUMNS = (
    "url",
    "final_url",
    "status",
    "content_type",
    "depth",
    "value_type",
    "discovered_by",
    "links",
    "forms",
    "apis",
    "is_static",
    "is_similar",
    "similar_to",
    "elapsed_ms",
)


@runtime_checkable
class Sink(Protocol):
    name: str

    def on_result(self, result: PageResult) -> None: ...

    def on_sensitive(self, finding: Finding) -> None: ...

    def on_progress(self, event: ProgressEvent) -> None: ...

    def on_complete(self, summary: CrawlSummary) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


class FileSink:
    """Shared buffering for sinks that append to one file."""

    name = "file"
    heavy = False

    def __init__(self, path: Path, *, flush_every: int = 50, flush_seconds: float = 5.0):
        self.path = path
        self.flush_every = flush_every
        self.flush_seconds = flush_seconds
        self._handle: IO[str] | None = None
        self._pending = 0
        self._last_flush = time.monotonic()

    def _open(self) -> IO[str]:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8", newline="")
            self._on_open(self._handle)
        return self._handle

    def _on_open(self, handle: IO[str]) -> None:
        """Hook for headers written once per file."""

    def _wrote(self) -> None:
        self._pending += 1
        if self._pending >= self.flush_every or time.monotonic() - self._last_flush >= self.flush_seconds:
            self.flush()

    def on_result(self, result: PageResult) -> None:
        pass

    def on_sensitive(self, finding: Finding) -> None:
        pass

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_complete(self, summary: CrawlSummary) -> None:
        pass

    def flush(self) -> None:
        if self._handle is not None and self._pending:
            self._handle.flush()
        self._pending = 0
        self._last_flush = time.monotonic()

    def close(self) -> None:
        if self._handle is not None:
            self.flush()
            self._handle.close()
            self._handle = None


class JsonlSink(FileSink):
    """One JSON object per line; results and findings are tagged by ``type``."""

    name = "jsonl"
    heavy = True

    def __init__(self, out_dir: Path, **kwargs):
        super().__init__(out_dir / "results.jsonl", **kwargs)
        self.summary_path = out_dir / "summary.json"

    def _write(self, record: dict) -> None:
        self._open().write(orjson.dumps(record).decode("utf-8") + "\n")
        self._wrote()

    def on_result(self, result: PageResult) -> None:
        self._write({"type": "result", **result.to_dict()})

    def on_sensitive(self, finding: Finding) -> None:
        self._write({"type": "finding", **finding.to_dict()})

    def on_complete(self, summary: CrawlSummary) -> None:
        self.flush()
        self.summary_path.parent.mkdir(parents=True, exist_ok=True)
        self.summary_path.write_bytes(orjson.dumps(summary.to_dict(), option=orjson.OPT_INDENT_2))


class CsvSink(FileSink):
    name = "csv"

    def __init__(self, out_dir: Path, **kwargs):
        super().__init__(out_dir / "results.csv", **kwargs)
        self._writer = None

    def _on_open(self, handle: IO[str]) -> None:
        self._writer = csv.writer(handle)
        if handle.tell() == 0:
            self._writer.writerow(CSV_COLUMNS)

    def on_result(self, result: PageResult) -> None:
        self._open()
        self._writer.writerow(
            (
                result.url,
                result.final_url,
                result.status,
                result.content_type,
                result.depth,
                result.value_type,
                result.discovered_by,
                len(result.links),
                len(result.forms),
                len(result.apis),
                result.is_static,
                result.is_similar,
                result.similar_to or "",
                round(result.elapsed_ms, 2),
            )
        )
        self._wrote()


class HtmlReportSink:
    """Keeps a bounded table of results and renders ``report.html`` on completion."""

    name = "html"
    heavy = True

    def __init__(self, out_dir: Path, *, max_rows: int = 5000):
        self.path = out_dir / "report.html"
        self.max_rows = max_rows
        self.rows: list[ReportRow] = []
        self.findings: list[Finding] = []
        self.dropped = 0

    def on_result(self, result: PageResult) -> None:
        if len(self.rows) >= self.max_rows:
            self.dropped += 1
            return
        self.rows.append(ReportRow.from_result(result))

    def on_sensitive(self, finding: Finding) -> None:
        self.findings.append(finding)

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_complete(self, summary: CrawlSummary) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            render_report_html(summary, self.rows, self.findings, dropped=self.dropped), encoding="utf-8"
        )
        logger.info(f"HTML report written to {self.path}")

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


class TextSummarySink(FileSink):
    """Logs progress events and writes a plain-text ``summary.txt``."""

    name = "text"

    def __init__(self, out_dir: Path, **kwargs):
        super().__init__(out_dir / "summary.txt", **kwargs)

    def on_progress(self, event: ProgressEvent) -> None:
        if event.kind in (ProgressKind.PAGE_DONE, ProgressKind.PAGE_FAILED):
            logger.debug(f"[{event.kind.value}] {event.url} {event.detail}")
        else:
            logger.info(f"[{event.kind.value}] {event.detail}")

    def on_complete(self, summary: CrawlSummary) -> None:
        lines = [
            f"Task:            {summary.task_id}",
            f"Target:          {summary.target_url}",
            f"Status:          {summary.status}",
            f"Crawled:         {summary.total_crawled}",
            f"Failed:          {summary.total_failed}",
            f"Discovered URLs: {summary.discovered_urls}",
            f"Forms:           {summary.forms}",
            f"APIs:            {len(summary.apis)}",
            f"Subdomains:      {len(summary.subdomains)}",
            f"External links:  {len(summary.external_links)}",
            f"Cross-domain JS: {len(summary.cross_domain_js)}",
            f"Hidden paths:    {len(summary.hidden_paths)}",
            f"Duration:        {summary.duration_seconds:.1f}s",
        ]
        if summary.subdomains:
            lines.append("")
            lines.append("Subdomains:")
            lines.extend(f"  {host}" for host in summary.subdomains)
        if summary.hidden_paths:
            lines.append("")
            lines.append("Hidden paths:")
            lines.extend(f"  {url}" for url in summary.hidden_paths)
        if summary.effective_params:
            lines.append("")
            lines.append("Effective parameters:")
            lines.extend(f"  {url}: {', '.join(params)}" for url, params in summary.effective_params.items())
        handle = self._open()
        handle.write("\n".join(lines) + "\n")
        self._wrote()
        self.flush()
        logger.info(
            f"Crawl {summary.status}: {summary.total_crawled} pages, {summary.total_failed} failed, "
            f"{len(summary.apis)} APIs, {summary.forms} forms in {summary.duration_seconds:.1f}s"
        )


def default_sinks(out_dir: str | Path, *, flush_every: int = 50, flush_seconds: float = 5.0) -> list[Sink]:
    directory = Path(out_dir)
    return [
        JsonlSink(directory, flush_every=flush_every, flush_seconds=flush_seconds),
        CsvSink(directory, flush_every=flush_every, flush_seconds=flush_seconds),
        HtmlReportSink(directory),
        TextSummarySink(directory, flush_every=flush_every, flush_seconds=flush_seconds),
    ]
