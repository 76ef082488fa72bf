"""Tests for file sinks and the HTML report."""

import csv
import logging

import orjson

from recon_crawler.domain.models import CrawlSummary, Finding, Form, PageResult, ProgressEvent, ProgressKind
from recon_crawler.output.report import ReportRow, render_report_html
from recon_crawler.output.sinks import CSV_COLUMNS, CsvSink, HtmlReportSink, JsonlSink, TextSummarySink, default_sinks


def _result(url="https://example.com/", **kwargs):
    return PageResult(
        url=url,
        final_url=url,
        status=kwargs.pop("status", 200),
        content_type="text/html",
        links=["https://example.com/a", "https://example.com/b"],
        forms=[Form(action="https://example.com/login", method="POST")],
        **kwargs,
    )


def _summary(**kwargs):
    values = {
        "task_id": "t1",
        "target_url": "https://example.com/",
        "status": "completed",
        "total_crawled": 2,
        "total_failed": 1,
        "duration_seconds": 3.5,
        "discovered_urls": 10,
        "forms": 1,
        "apis": ["https://example.com/api/v1/x"],
        "subdomains": ["api.example.com"],
    }
    values.update(kwargs)
    return CrawlSummary(**values)


class TestJsonlSink:
    def test_results_and_findings_are_tagged_lines(self, tmp_path):
        sink = JsonlSink(tmp_path, flush_every=1)

        sink.on_result(_result())
        sink.on_sensitive(Finding(url="https://example.com/", kind="aws_key", value="AKIA...", severity="high"))
        sink.close()

        lines = [orjson.loads(line) for line in (tmp_path / "results.jsonl").read_text().splitlines()]
        assert [line["type"] for line in lines] == ["result", "finding"]
        assert lines[0]["links"] == ["https://example.com/a", "https://example.com/b"]
        assert "body" not in lines[0]
        assert lines[1]["severity"] == "high"

    def test_flushes_every_n_entries(self, tmp_path):
        sink = JsonlSink(tmp_path, flush_every=2, flush_seconds=3600)
        path = tmp_path / "results.jsonl"

        sink.on_result(_result("https://example.com/1"))
        assert path.read_text() == ""
        sink.on_result(_result("https://example.com/2"))
        assert len(path.read_text().splitlines()) == 2
        sink.close()

    def test_summary_written_on_complete(self, tmp_path):
        sink = JsonlSink(tmp_path)

        sink.on_complete(_summary(effective_params={"https://example.com/shop": ["id"]}))

        summary = orjson.loads((tmp_path / "summary.json").read_bytes())
        assert summary["effective_params"] == {"https://example.com/shop": ["id"]}
        assert summary["subdomains"] == ["api.example.com"]


def test_csv_sink_writes_header_once(tmp_path):
    first = CsvSink(tmp_path)
    first.on_result(_result())
    first.close()
    second = CsvSink(tmp_path)
    second.on_result(_result("https://example.com/next", status=404))
    second.close()

    with (tmp_path / "results.csv").open(newline="", encoding="utf-8") as fp:
        rows = list(csv.reader(fp))
    assert rows[0] == list(CSV_COLUMNS)
    assert len(rows) == 3
    assert rows[2][:3] == ["https://example.com/next", "https://example.com/next", "404"]
    assert rows[1][CSV_COLUMNS.index("links")] == "2"


class TestHtmlReport:
    def test_report_escapes_and_lists_sections(self, tmp_path):
        sink = HtmlReportSink(tmp_path)
        sink.on_result(_result("https://example.com/?q=<script>"))
        sink.on_result(_result("https://example.com/copy", is_similar=True, similar_to="https://example.com/"))

        sink.on_complete(_summary(external_links=["https://github.com/org"]))

        html = (tmp_path / "report.html").read_text(encoding="utf-8")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "similar to https://example.com/" in html
        assert "Subdomains (1)" in html
        assert "External links (1)" in html

    def test_rows_are_bounded(self, tmp_path):
        sink = HtmlReportSink(tmp_path, max_rows=1)

        sink.on_result(_result("https://example.com/1"))
        sink.on_result(_result("https://example.com/2"))

        assert len(sink.rows) == 1
        assert sink.dropped == 1
        assert "1 more results omitted" in render_report_html(_summary(), sink.rows, dropped=sink.dropped)

    def test_static_rows_carry_reason(self):
        result = _result("https://example.com/a.png", is_static=True, static_reason="extension:image")

        row = ReportRow.from_result(result)

        assert row.note == "extension:image"


class TestTextSummarySink:
    def test_summary_file_and_log(self, tmp_path, caplog):
        sink = TextSummarySink(tmp_path)

        with caplog.at_level(logging.INFO, logger="recon_crawler.output.sinks"):
            sink.on_progress(ProgressEvent(kind=ProgressKind.CRAWL_STARTED, detail="target https://example.com/"))
            sink.on_complete(_summary(effective_params={"https://example.com/shop": ["id", "page"]}))
        sink.close()

        text = (tmp_path / "summary.txt").read_text(encoding="utf-8")
        assert "Crawled:         2" in text
        assert "api.example.com" in text
        assert "https://example.com/shop: id, page" in text
        assert "[crawl_started] target https://example.com/" in caplog.text
        assert "Crawl completed: 2 pages" in caplog.text

    def test_hidden_paths_and_cross_domain_js_are_listed(self, tmp_path):
        sink = TextSummarySink(tmp_path)

        sink.on_complete(
            _summary(hidden_paths=["https://example.com/admin"], cross_domain_js=["https://cdn.other.net/a.js"])
        )
        sink.close()

        text = (tmp_path / "summary.txt").read_text(encoding="utf-8")
        assert "Cross-domain JS: 1" in text
        assert "Hidden paths:    1" in text
        assert "  https://example.com/admin" in text
        html = render_report_html(_summary(hidden_paths=["https://example.com/admin"]), [])
        assert "Hidden paths (1)" in html


def test_default_sinks_cover_every_format(tmp_path):
    assert [sink.name for sink in default_sinks(tmp_path)] == ["jsonl", "csv", "html", "text"]
