"""HTML crawl report renderer."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from ..domain.models import CrawlSummary, Finding, PageResult


@dataclass(slots=True, frozen=True)
class ReportRow:
    url: str
    status: int
    depth: int
    value_type: str
    links: int
    forms: int
    apis: int
    note: str = ""

    @classmethod
    def from_result(cls, result: PageResult) -> ReportRow:
        if result.is_similar:
            note = f"similar to {result.similar_to}"
        elif result.is_static:
            note = result.static_reason
        else:
            note = ""
        return cls(
            url=result.url,
            status=result.status,
            depth=result.depth,
            value_type=result.value_type,
            links=len(result.links),
            forms=len(result.forms),
            apis=len(result.apis),
            note=note,
        )


def _list_section(title: str, items: list[str]) -> str:
    if not items:
        return ""
    entries = "\n".join(f"        <li><code>{escape(item)}</code></li>" for item in items)
    return f"""
    <section>
      <h2>{escape(title)} ({len(items)})</h2>
      <ul>
{entries}
      </ul>
    </section>"""


def render_report_html(
    summary: CrawlSummary,
    rows: list[ReportRow],
    findings: list[Finding] | None = None,
    *,
    dropped: int = 0,
) -> str:
    table_rows = "\n".join(
        f"          <tr class=\"status-{row.status // 100}xx\">"
        f"<td><a href=\"{escape(row.url)}\">{escape(row.url)}</a></td>"
        f"<td>{row.status}</td><td>{row.depth}</td><td>{escape(row.value_type)}</td>"
        f"<td>{row.links}</td><td>{row.forms}</td><td>{row.apis}</td><td>{escape(row.note)}</td></tr>"
        for row in rows
    )
    finding_items = [
        f"[{finding.severity}] {finding.kind}: {finding.value} ({finding.url})" for finding in findings or []
    ]
    truncated = f"<p class=\"muted\">{dropped} more results omitted.</p>" if dropped else ""
    params = [f"{url}: {', '.join(names)}" for url, names in summary.effective_params.items()]
    sections = "".join(
        (
            _list_section("APIs", summary.apis),
            _list_section("Subdomains", summary.subdomains),
            _list_section("Hidden paths", summary.hidden_paths),
            _list_section("Effective parameters", params),
            _list_section("Findings", finding_items),
            _list_section("External links", summary.external_links),
            _list_section("Cross-domain JS", summary.cross_domain_js),
        )
    )

    template = f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Recon report: {escape(summary.target_url)}</title>
    <style>
      body {{ font-family: system-ui, sans-serif; margin: 2rem; color: #1e293b; }}
      table {{ border-collapse: collapse; width: 100%; font-size: 0.85rem; }}
      th, td {{ border-bottom: 1px solid #e2e8f0; padding: 0.3rem 0.5rem; text-align: left; }}
      .status-4xx td, .status-5xx td {{ color: #b91c1c; }}
      .metrics {{ display: flex; gap: 2rem; flex-wrap: wrap; }}
      .metrics div {{ min-width: 8rem; }}
      .muted {{ color: #64748b; }}
    </style>
  </head>
  <body>
    <header>
      <p class="muted">Task {escape(summary.task_id)} &middot; {escape(summary.status)}</p>
      <h1>{escape(summary.target_url)}</h1>
    </header>
    <section class="metrics">
      <div><p class="muted">Crawled</p><p>{summary.total_crawled}</p></div>
      <div><p class="muted">Failed</p><p>{summary.total_failed}</p></div>
      <div><p class="muted">Discovered</p><p>{summary.discovered_urls}</p></div>
      <div><p class="muted">Forms</p><p>{summary.forms}</p></div>
      <div><p class="muted">APIs</p><p>{len(summary.apis)}</p></div>
      <div><p class="muted">Duration</p><p>{summary.duration_seconds:.1f}s</p></div>
    </section>
    <section>
      <h2>Pages</h2>
      <table>
        <thead>
          <tr><th>URL</th><th>Status</th><th>Depth</th><th>Type</th><th>Links</th><th>Forms</th><th>APIs</th><th>Note</th></tr>
        </thead>
        <tbody>
{table_rows}
        </tbody>
      </table>
      {truncated}
    </section>{sections}
  </body>
</html>
"""
    return template
