"""End-to-end tests for ReconCrawler against in-memory sites."""

import asyncio

import httpx
import orjson
import pytest

from recon_crawler.config import Settings
from recon_crawler.crawler import EXIT_INTERRUPTED, EXIT_OK, ReconCrawler, settings_snapshot
from recon_crawler.domain.crawl_state import CrawlState, CrawlStatus
from recon_crawler.domain.models import Finding, ProgressKind
from recon_crawler.errors import ConfigError
from recon_crawler.fetching.fetcher import FetchResponse
from recon_crawler.output.checkpoint import CheckpointStore


SITE = {
    "/": (
        "<html><head><title>Home</title></head><body>"
        "<a href='/about'>About</a><a href='/admin'>Admin</a><a href='/products/1'>Shop</a>"
        "<a href='https://github.com/acme'>GitHub</a><a href='https://api.example.com/v1/'>API</a>"
        "</body></html>"
    ),
    "/about": (
        "<html><body><a href='/'>Home</a>"
        "<form action='/contact' method='post'><input name='email' required></form></body></html>"
    ),
    "/contact": "<html><body><p>Thanks</p></body></html>",
    "/products/1": "<html><body><a href='/products/2'>Next</a></body></html>",
    "/products/2": "<html><body><p>Last page</p></body></html>",
    "/hidden": "<html><body><p>Not linked anywhere</p></body></html>",
}


class SiteTransport:
    """Serve ``SITE`` for example.com and record every request."""

    def __init__(self, pages=None, *, robots="", broken=()):
        self.pages = SITE if pages is None else pages
        self.robots = robots
        self.broken = set(broken)
        self.requests: list[httpx.URL] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url)
        path = request.url.path
        if request.url.host != "example.com":
            return httpx.Response(404)
        if path in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        if path == "/robots.txt":
            return httpx.Response(200, text=self.robots) if self.robots else httpx.Response(404)
        if path == "/admin":
            return httpx.Response(403, text="forbidden")
        if path in self.pages:
            return httpx.Response(200, text=self.pages[path], headers={"content-type": "text/html; charset=utf-8"})
        return httpx.Response(404, text="missing")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def page_paths(self) -> list[str]:
        return [url.path for url in self.requests if url.path != "/robots.txt"]


class RecordingSink:
    name = "recording"

    def __init__(self):
        self.results = []
        self.findings = []
        self.events = []
        self.summaries = []

    def on_result(self, result):
        self.results.append(result)

    def on_sensitive(self, finding):
        self.findings.append(finding)

    def on_progress(self, event):
        self.events.append(event)

    def on_complete(self, summary):
        self.summaries.append(summary)

    def flush(self):
        pass

    def close(self):
        pass


class ScriptedFetcher:
    """Fetcher double that can call a hook before answering."""

    def __init__(self, pages, on_fetch=None):
        self.pages = pages
        self.on_fetch = on_fetch
        self.calls: list[str] = []

    async def fetch(self, url, options):
        key = url.serialize()
        self.calls.append(key)
        if self.on_fetch is not None:
            self.on_fetch(key)
        # Lets the pool observe a stop request between pages
        await asyncio.sleep(0.01)
        body = self.pages.get(url.path, "")
        return FetchResponse(
            final_url=key,
            status=200 if body else 404,
            headers={"content-type": "text/html"},
            body=body.encode(),
            elapsed_ms=5.0,
        )

    async def aclose(self):
        pass


def _settings(tmp_path, **overrides):
    values = {
        "target_url": "https://example.com/",
        "task_id": "site-1",
        "workers": 2,
        "rate_per_second": 1000,
        "burst": 100,
        "max_retries": 0,
        "passive_robots": False,
        "passive_sitemap": False,
        "dom_dedup_enabled": False,
        "out_dir": str(tmp_path / "out"),
        "checkpoint_dir": str(tmp_path / "checkpoints"),
        "sink_flush_seconds": 0.05,
    }
    values.update(overrides)
    return Settings(**values)


class TestFullCrawl:
    """A complete crawl of the small site."""

    @pytest.mark.asyncio
    async def test_crawls_every_reachable_page(self, tmp_path):
        site = SiteTransport()
        settings = _settings(tmp_path, scope_mode="strict")

        async with ReconCrawler(settings, transport=site.transport) as crawler:
            run = await crawler.run()

        summary = run.summary
        assert run.exit_code == EXIT_OK
        assert summary.status == "completed"
        assert sorted(crawler.state.visited_urls) == [
            "https://example.com/",
            "https://example.com/about",
            "https://example.com/admin",
            "https://example.com/contact",
            "https://example.com/products/1",
            "https://example.com/products/2",
        ]
        assert summary.total_crawled == 6
        assert crawler.state.failed_urls == {"https://example.com/admin": "HTTP 403"}
        assert summary.forms == 1
        assert summary.subdomains == ["api.example.com"]
        assert "https://github.com/acme" in summary.external_links
        assert "https://api.example.com/v1/" in summary.external_links
        assert "/hidden" not in site.page_paths()

    @pytest.mark.asyncio
    async def test_writes_sinks_and_final_checkpoint(self, tmp_path):
        settings = _settings(tmp_path, scope_mode="strict")

        async with ReconCrawler(settings, transport=SiteTransport().transport) as crawler:
            run = await crawler.run()

        out = tmp_path / "out"
        lines = [orjson.loads(line) for line in (out / "results.jsonl").read_text().splitlines()]
        assert len([line for line in lines if line["type"] == "result"]) == 6
        assert (out / "results.csv").exists()
        assert (out / "report.html").exists()
        assert orjson.loads((out / "summary.json").read_bytes())["total_crawled"] == 6

        assert run.checkpoint_path == tmp_path / "checkpoints" / "site-1_checkpoint.json"
        saved = await CheckpointStore(tmp_path / "checkpoints").load("site-1")
        assert saved.status == CrawlStatus.COMPLETED
        assert saved.pending_urls == []
        assert "cookie" not in saved.config

    @pytest.mark.asyncio
    async def test_progress_events_reach_sinks(self, tmp_path):
        sink = RecordingSink()
        settings = _settings(tmp_path, scope_mode="strict")

        async with ReconCrawler(settings, transport=SiteTransport().transport, sinks=[sink]) as crawler:
            await crawler.run()

        kinds = [event.kind for event in sink.events]
        assert kinds[0] == ProgressKind.CRAWL_STARTED
        assert kinds.count(ProgressKind.PAGE_DONE) == 6
        assert ProgressKind.CHECKPOINT_SAVED in kinds
        assert kinds[-1] == ProgressKind.CRAWL_FINISHED
        assert len(sink.summaries) == 1
        assert all(result.body is None for result in sink.results)

    @pytest.mark.asyncio
    async def test_fetch_errors_are_recorded_not_fatal(self, tmp_path):
        sink = RecordingSink()
        site = SiteTransport(broken={"/about"})

        async with ReconCrawler(_settings(tmp_path), transport=site.transport, sinks=[sink]) as crawler:
            run = await crawler.run()

        assert run.status == "completed"
        assert "https://example.com/about" in crawler.state.failed_urls
        assert "https://example.com/about" not in crawler.state.visited_urls
        failed = [event for event in sink.events if event.kind == ProgressKind.PAGE_FAILED]
        assert [event.url for event in failed] == ["https://example.com/about"]

    @pytest.mark.asyncio
    async def test_max_depth_limits_the_crawl(self, tmp_path):
        site = SiteTransport()

        async with ReconCrawler(_settings(tmp_path, max_depth=0), transport=site.transport, sinks=[]) as crawler:
            run = await crawler.run()

        assert run.summary.total_crawled == 1
        assert site.page_paths() == ["/"]


class TestPassiveAndFuzzing:
    @pytest.mark.asyncio
    async def test_robots_paths_are_crawled(self, tmp_path):
        site = SiteTransport(robots="User-agent: *\nDisallow: /hidden\n")
        settings = _settings(tmp_path, passive_robots=True)

        async with ReconCrawler(settings, transport=site.transport, sinks=[]) as crawler:
            run = await crawler.run()

        assert "https://example.com/hidden" in crawler.state.visited_urls
        assert run.summary.statistics["passive"]["sources"]["robots"]["enqueued"] == 1

    @pytest.mark.asyncio
    async def test_common_paths_that_answer_are_hidden_paths(self, tmp_path):
        site = SiteTransport(pages={"/": "<html><body><p>No links</p></body></html>", "/hidden": "<p>here</p>"})
        settings = _settings(tmp_path, passive_common_paths=True)

        async with ReconCrawler(settings, transport=site.transport, sinks=[]) as crawler:
            run = await crawler.run()

        expected = ["https://example.com/admin", "https://example.com/hidden"]
        assert "/login" in site.page_paths()
        assert sorted(run.summary.hidden_paths) == expected
        saved = await CheckpointStore(tmp_path / "checkpoints").load("site-1")
        assert sorted(saved.custom_data["hidden_paths"]) == expected

    @pytest.mark.asyncio
    async def test_fuzzer_queues_parameter_variants(self, tmp_path):
        site = SiteTransport(pages={"/": "<html><body><p>No links</p></body></html>"})
        settings = _settings(tmp_path, fuzz_enabled=True)

        async with ReconCrawler(settings, transport=site.transport, sinks=[]) as crawler:
            run = await crawler.run()

        queries = [url.query.decode() for url in site.requests if url.query]
        assert queries
        assert all("=" in query for query in queries)
        assert run.summary.statistics["fuzzer"]["fuzzed_urls"] == 1


class TestInterruptAndResume:
    """Stopping mid-crawl checkpoints the frontier; resuming finishes it."""

    PAGES = {
        "/": "<html><body><a href='/a'>A</a><a href='/b'>B</a><a href='/c'>C</a></body></html>",
        "/a": "<html><body>a</body></html>",
        "/b": "<html><body>b</body></html>",
        "/c": "<html><body>c</body></html>",
    }

    @pytest.mark.asyncio
    async def test_stop_checkpoints_pending_urls_and_resume_skips_visited(self, tmp_path):
        settings = _settings(tmp_path, workers=1)
        fetcher = ScriptedFetcher(self.PAGES)

        async with ReconCrawler(settings, fetcher=fetcher, sinks=[]) as crawler:

            def stop_after_root(url):
                if url != "https://example.com/":
                    crawler.stop("test interrupt")

            fetcher.on_fetch = stop_after_root
            run = await crawler.run()

        assert run.exit_code == EXIT_INTERRUPTED
        assert run.stop_reason == "test interrupt"
        assert len(fetcher.calls) == 2
        interrupted_on = fetcher.calls[1]

        store = CheckpointStore(tmp_path / "checkpoints")
        state = await store.load("site-1")
        assert state.status == CrawlStatus.PAUSED
        assert set(state.visited_urls) == {"https://example.com/", interrupted_on}
        remaining = {"https://example.com/a", "https://example.com/b", "https://example.com/c"} - {interrupted_on}
        assert set(state.pending_urls) == remaining
        assert {depth for _, depth in state.pending_with_depths()} == {1}

        resumed_fetcher = ScriptedFetcher(self.PAGES)
        async with ReconCrawler(settings, state=state, fetcher=resumed_fetcher, sinks=[]) as resumed:
            second = await resumed.run()

        assert second.exit_code == EXIT_OK
        assert set(resumed_fetcher.calls) == remaining
        assert resumed.state.total_crawled == 4
        assert (await store.load("site-1")).status == CrawlStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resume_retries_transport_failures_only(self, tmp_path):
        settings = _settings(tmp_path, workers=1)
        state = CrawlState.create_new("site-1", "https://example.com/", max_depth=3, config=settings_snapshot(settings))
        state.start()
        state.mark_visited("https://example.com/", depth=0)
        state.mark_failed("https://example.com/a", "timeout: read timed out", depth=1)
        state.mark_visited("https://example.com/b", depth=1)
        state.mark_failed("https://example.com/b", "HTTP 500")
        state.pause()
        assert state.failures_to_retry() == [("https://example.com/a", 1)]
        fetcher = ScriptedFetcher(self.PAGES)

        async with ReconCrawler(settings, state=state, fetcher=fetcher, sinks=[]) as crawler:
            run = await crawler.run()

        assert run.exit_code == EXIT_OK
        assert fetcher.calls == ["https://example.com/a"]
        assert "https://example.com/a" in crawler.state.visited_urls
        assert set(crawler.state.failed_urls) == {"https://example.com/b"}
        assert crawler.state.total_failed == 2

    @pytest.mark.asyncio
    async def test_pending_urls_pop_before_new_discoveries(self, tmp_path):
        pages = {
            "/p1": "<html><body><a href='/new'>new</a></body></html>",
            "/p2": "<html><body>p2</body></html>",
            "/new": "<html><body>new</body></html>",
        }
        settings = _settings(tmp_path, workers=1)
        state = CrawlState.create_new("site-1", "https://example.com/", max_depth=3, config=settings_snapshot(settings))
        state.start()
        for index in range(100):
            state.mark_visited(f"https://example.com/seen/{index}", depth=1)
        state.set_pending([("https://example.com/p1", 1), ("https://example.com/p2", 1)])
        state.pause()
        fetcher = ScriptedFetcher(pages)

        async with ReconCrawler(settings, state=state, fetcher=fetcher, sinks=[]) as crawler:
            await crawler.run()

        assert fetcher.calls[:2] == ["https://example.com/p1", "https://example.com/p2"]
        assert fetcher.calls[2] == "https://example.com/new"
        assert not any("/seen/" in url for url in fetcher.calls)
        assert crawler.state.total_crawled == 103

    def test_completed_checkpoint_cannot_be_resumed(self, tmp_path):
        state = CrawlState.create_new("done", "https://example.com/", max_depth=2)
        state.start()
        state.complete()

        with pytest.raises(ConfigError):
            ReconCrawler(_settings(tmp_path), state=state, sinks=[])


class TestCrawlerSurface:
    @pytest.mark.asyncio
    async def test_run_requires_context_manager(self, tmp_path):
        crawler = ReconCrawler(_settings(tmp_path), sinks=[])

        with pytest.raises(RuntimeError):
            await crawler.run()

    def test_missing_target_is_a_config_error(self, tmp_path):
        with pytest.raises(ConfigError):
            ReconCrawler(_settings(tmp_path, target_url=""), sinks=[])

    @pytest.mark.asyncio
    async def test_checkpoint_write_failure_does_not_stop_the_crawl(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        settings = _settings(tmp_path, checkpoint_dir=str(blocker / "checkpoints"))

        async with ReconCrawler(settings, transport=SiteTransport().transport, sinks=[]) as crawler:
            run = await crawler.run()

        assert run.status == "completed"
        assert run.checkpoint_path is None

    @pytest.mark.asyncio
    async def test_findings_are_forwarded_to_sinks(self, tmp_path):
        sink = RecordingSink()
        finding = Finding(url="https://example.com/", kind="aws_key", value="AKIA...", severity="high")

        async with ReconCrawler(_settings(tmp_path), transport=SiteTransport().transport, sinks=[sink]) as crawler:
            await crawler.emitter.start()
            await crawler.report_finding(finding)
            await crawler.emitter.close()

        assert sink.findings == [finding]

    @pytest.mark.asyncio
    async def test_cookies_are_sent_to_the_target(self, tmp_path):
        seen = []

        def handler(request):
            seen.append(request.headers.get("cookie"))
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

        settings = _settings(tmp_path, cookie="session=abc; theme=dark")
        async with ReconCrawler(settings, transport=httpx.MockTransport(handler), sinks=[]) as crawler:
            await crawler.run()

        assert len(seen) == 1
        assert "session=abc" in seen[0]
        assert "theme=dark" in seen[0]
