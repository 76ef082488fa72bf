"""Single-target recon crawler.

``ReconCrawler`` wires the canonicalizer, scope engine, dedup stack,
frontier, learner, worker pool, driver, harvester, passive ingestor,
fuzzer and result emitter together from one :class:`Settings` object and
drives a crawl from seed (or checkpoint) to completion.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
import time
from typing import Any
from uuid import uuid4

import httpx

from .config import Settings
from .dedup.stack import DedupStack
from .domain.crawl_state import CrawlState, CrawlStatus
from .domain.models import CrawlSummary, Finding, ProgressEvent, ProgressKind
from .errors import CheckpointWriteError, ConfigError, InvalidUrlError
from .fetching.driver import FetchDriver
from .fetching.fetcher import Fetcher, HttpxFetcher
from .fuzzing.param_validator import SmartParamValidator
from .fuzzing.pattern_fuzzer import PatternFuzzer
from .observability.context import bind_task
from .observability.tracing import create_span
from .output.checkpoint import CheckpointStore
from .output.emitter import ResultEmitter
from .output.sinks import Sink, default_sinks
from .passive.archives import ArchiveSource, CommonCrawlSource, VirusTotalSource, WaybackSource
from .passive.common_paths import HIDDEN_PATH_STATUSES
from .passive.ingestor import IngestReport, PassiveIngestor
from .runtime.memory import MemoryGuard
from .runtime.rate_limit import TokenBucket
from .runtime.retry import AdaptiveTimeout, RetryPolicy
from .runtime.worker_pool import WorkerPool
from .scheduler.frontier import Frontier, FrontierEntry
from .scheduler.learner import AdaptiveLearner
from .scheduler.weights import WeightVector
from .services.link_harvester import LinkHarvester
from .services.scope_engine import ScopeEngine
from .utils.cookies import load_cookie_file, parse_cookie_string
from .utils.url_canonicalizer import CanonicalUrl, canonicalize
from .utils.url_classifier import ValueType


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 3

# Never persisted into checkpoint files
_SECRET_FIELDS = {"cookie", "virustotal_api_key", "USER_AGENTS"}


def generate_task_id() -> str:
    return f"recon-{datetime.now(timezone.utc):%Y%m%d-%H%M%S}-{uuid4().hex[:6]}"


def settings_snapshot(settings: Settings) -> dict[str, Any]:
    """Settings as stored in a checkpoint's ``config`` (secrets removed)."""
    return settings.model_dump(mode="json", exclude=_SECRET_FIELDS)


@dataclass(slots=True)
class CrawlRun:
    """What a finished ``ReconCrawler.run`` hands back to the caller."""

    summary: CrawlSummary
    checkpoint_path: Path | None = None
    stop_reason: str = ""

    @property
    def status(self) -> str:
        return self.summary.status

    @property
    def exit_code(self) -> int:
        if self.status == CrawlStatus.COMPLETED.value:
            return EXIT_OK
        if self.status == CrawlStatus.PAUSED.value:
            return EXIT_INTERRUPTED
        return EXIT_FAILURE


class ReconCrawler:
    """Crawl one target and report everything it finds.

    Use as an async context manager; the HTTP clients live for the
    duration of the ``async with`` block::

        async with ReconCrawler(settings) as crawler:
            run = await crawler.run()

    Pass ``state`` (a loaded checkpoint) to resume instead of starting
    from the seed. ``transport`` replaces the network for both the page
    fetcher and passive sources.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        state: CrawlState | None = None,
        sinks: list[Sink] | None = None,
        store: CheckpointStore | None = None,
        fetcher: Fetcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        archives: list[ArchiveSource] | None = None,
    ) -> None:
        self.settings = settings
        self.resumed = state is not None
        target_url = state.target_url if state is not None else settings.target_url
        if not target_url:
            raise ConfigError("A target URL is required")
        try:
            self.target: CanonicalUrl = canonicalize(target_url)
        except InvalidUrlError as exc:
            raise ConfigError(f"Invalid target URL {target_url!r}: {exc}") from exc

        if state is None:
            task_id = settings.task_id or generate_task_id()
            state = CrawlState.create_new(
                task_id,
                self.target.serialize(),
                max_depth=settings.max_depth,
                config=settings_snapshot(settings),
            )
        elif not state.status.can_resume:
            raise ConfigError(f"Checkpoint {state.task_id} is {state.status.value} and cannot be resumed")
        self.state = state
        self.task_id = state.task_id

        if settings.max_urls > settings.max_frontier:
            logger.warning(
                f"max_urls ({settings.max_urls}) exceeds max_frontier ({settings.max_frontier}); "
                "entries past the frontier capacity spill to its overflow queue"
            )

        self.scope = ScopeEngine(
            self.target,
            mode=settings.scope_mode,
            blacklist_hosts=settings.get_blacklist_hosts(),
            blacklist_regex=settings.get_blacklist_regex(),
            include_paths=settings.get_include_paths(),
            exclude_paths=settings.get_exclude_paths(),
            allow_query=settings.allow_query,
            excluded_params=settings.get_excluded_params(),
            static_filter=settings.static_filter,
        )
        self.dedup = DedupStack(
            caps={ValueType(name): cap for name, cap in settings.pattern_caps().items()},
            dom_enabled=settings.dom_dedup_enabled,
            dom_dimension=settings.dom_dimension,
            dom_threshold=settings.dom_threshold,
            expected_urls=max(10_000, settings.max_urls * 2),
        )
        saved_weights = state.custom_data.get("weights")
        self.frontier = Frontier(
            maxsize=settings.max_frontier,
            weights=WeightVector.from_dict(saved_weights) if saved_weights else None,
            is_internal=self.scope.is_internal,
            task_label=self.task_id,
        )
        self.harvester = LinkHarvester(
            self.frontier,
            self.scope,
            self.dedup,
            max_depth=state.max_depth,
            max_urls=settings.max_urls,
            external_links_cap=settings.external_links_cap,
            cross_domain_js_cap=settings.cross_domain_js_cap,
            already_enqueued=self._enqueued_before(state) if self.resumed else 0,
        )
        self.learner = AdaptiveLearner(self.frontier, learning_rate=settings.learning_rate)
        self.bucket = TokenBucket(settings.rate_per_second, settings.effective_burst())
        self.store = store or CheckpointStore(settings.checkpoint_path)
        self.emitter = ResultEmitter(
            sinks
            if sinks is not None
            else default_sinks(
                settings.out_path,
                flush_every=settings.sink_flush_every,
                flush_seconds=settings.sink_flush_seconds,
            ),
            queue_size=settings.sink_queue_size,
            flush_seconds=settings.sink_flush_seconds,
        )
        self.stop_event = asyncio.Event()
        self.stop_reason = ""
        self.passive_report: IngestReport | None = None
        self.hidden_paths: list[str] = []

        self._fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self._transport = transport
        self._archives = archives
        self._passive_client: httpx.AsyncClient | None = None
        self.driver: FetchDriver | None = None
        self.fuzzer: PatternFuzzer | None = None
        self._pool: WorkerPool | None = None
        self._started_at = 0.0

    async def __aenter__(self) -> ReconCrawler:
        """Open the HTTP clients and build the fetch pipeline."""
        if self._fetcher is None:
            self._fetcher = HttpxFetcher(
                user_agent=self.settings.get_random_user_agent(),
                cookies=self._load_cookies(),
                transport=self._transport,
            )
        self.driver = FetchDriver(
            self._fetcher,
            dedup=self.dedup,
            bucket=self.bucket,
            retry=RetryPolicy(
                max_retries=self.settings.max_retries,
                base_delay=self.settings.retry_base_delay,
                multiplier=self.settings.retry_multiplier,
                max_delay=self.settings.retry_max_delay,
            ),
            timeout=AdaptiveTimeout(self.settings.request_timeout, self.settings.max_timeout),
            max_html_bytes=self.settings.max_body_bytes_html,
            max_other_bytes=self.settings.max_body_bytes_js,
            memory_guard=MemoryGuard(self.settings.memory_soft_cap_mb),
        )
        if self.settings.fuzz_enabled:
            validator = None
            if self.settings.fuzz_validate:
                validator = SmartParamValidator(
                    self._fetcher, bucket=self.bucket, timeout=self.settings.request_timeout
                )
            self.fuzzer = PatternFuzzer(self.harvester, validator=validator)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.emitter.close()
        if self._passive_client is not None:
            await self._passive_client.aclose()
            self._passive_client = None
        if self._owns_fetcher and self._fetcher is not None:
            await self._fetcher.aclose()

    def _load_cookies(self) -> httpx.Cookies | None:
        domain = self.target.host
        if self.settings.cookie_file:
            return load_cookie_file(self.settings.cookie_file, domain=domain)
        if self.settings.cookie:
            return parse_cookie_string(self.settings.cookie, domain=domain)
        return None

    def stop(self, reason: str = "stop requested") -> None:
        """Ask the crawl to stop; it checkpoints and ends as ``paused``."""
        if not self.stop_event.is_set():
            self.stop_reason = reason
            self.stop_event.set()

    async def pause(self) -> Path | None:
        """Park the workers after their in-flight pages and save a checkpoint."""
        await self.frontier.pause()
        self.state.pause()
        logger.info(f"Crawl {self.task_id} paused")
        return await self.save_checkpoint()

    async def unpause(self) -> None:
        self.state.resume()
        await self.frontier.resume()
        logger.info(f"Crawl {self.task_id} resumed")

    async def report_finding(self, finding: Finding) -> None:
        """Forward a sensitive-information hit from an external scanner to the sinks."""
        await self.emitter.emit_finding(finding)

    async def run(self) -> CrawlRun:
        """Crawl until the frontier drains, the deadline passes or ``stop`` is called."""
        if self.driver is None:
            raise RuntimeError("ReconCrawler must be used as async context manager")

        bind_task(self.task_id)
        self._started_at = time.monotonic()
        await self.emitter.start()
        checkpoint_task: asyncio.Task[None] | None = None
        deadline = None

        with create_span("recon.crawl", attributes={"task_id": self.task_id, "target": self.target.serialize()}):
            try:
                if self.resumed:
                    self.state.resume()
                    await self._restore_frontier()
                else:
                    self.state.start()
                    await self._seed()
                await self._emit(
                    ProgressKind.CRAWL_STARTED,
                    f"{'resumed' if self.resumed else 'started'} {self.target.serialize()} "
                    f"({len(self.frontier)} queued)",
                )

                checkpoint_task = asyncio.create_task(self._checkpoint_loop(), name="recon-checkpoint")
                if self.settings.deadline_seconds:
                    deadline = asyncio.get_running_loop().call_later(
                        self.settings.deadline_seconds, self.stop, "deadline reached"
                    )
                self._pool = WorkerPool(
                    self.frontier,
                    self._handle_entry,
                    size=self.settings.effective_workers(),
                    task_id=self.task_id,
                )
                drained = await self._pool.run(self.stop_event)
            except Exception as exc:
                logger.exception(f"Crawl {self.task_id} failed: {exc}")
                self.state.fail(f"{type(exc).__name__}: {exc}")
                self.stop_reason = "error"
                drained = False
            finally:
                if deadline is not None:
                    deadline.cancel()
                if checkpoint_task is not None:
                    checkpoint_task.cancel()
                    await asyncio.gather(checkpoint_task, return_exceptions=True)

            self._finish_state(drained)
            checkpoint_path = await self.save_checkpoint()
            summary = self.build_summary()
            await self._emit(ProgressKind.CRAWL_FINISHED, f"{summary.status}: {summary.total_crawled} pages")
            await self.emitter.complete(summary)
            await self.emitter.close()

        self._log_completion(summary)
        return CrawlRun(summary=summary, checkpoint_path=checkpoint_path, stop_reason=self.stop_reason)

    def _finish_state(self, drained: bool) -> None:
        if self.state.status == CrawlStatus.FAILED:
            return
        if drained:
            if self.state.status == CrawlStatus.PAUSED:
                self.state.resume()
            self.state.complete()
            return
        logger.warning(f"Crawl {self.task_id} interrupted ({self.stop_reason or 'stopped'}); saving checkpoint")
        self.state.pause()

    async def _seed(self) -> None:
        seed = self.target.serialize()
        if not await self.harvester.submit(seed, depth=0, discovered_by="seed"):
            logger.warning(f"Seed {seed} was rejected by scope or dedup filters")
        if self._passive_enabled():
            ingestor = PassiveIngestor(
                self.harvester,
                self._get_passive_client(),
                robots=self.settings.passive_robots,
                sitemap=self.settings.passive_sitemap,
                common_paths=self.settings.passive_common_paths,
                archives=self._archive_sources(),
                archive_limit=self.settings.passive_limit,
                burp_file=self.settings.burp_file,
                har_file=self.settings.har_file,
                bucket=self.bucket,
            )
            self.passive_report = await ingestor.ingest(self.target)
            self.state.add_forms(self.passive_report.forms)
            self.state.add_apis(self.passive_report.apis)

    async def _restore_frontier(self) -> None:
        """Re-seed the frontier from a checkpoint; pending URLs pop before new discoveries.

        URLs that failed without a response (timeouts, resets, DNS) are
        queued again after the pending ones.
        """
        pending = self.state.pending_with_depths()
        queued = {url for url, _ in pending}
        retries = [(url, depth) for url, depth in self.state.failures_to_retry() if url not in queued]
        if retries:
            logger.info(f"Retrying {len(retries)} URLs that failed without a response")
        pending = pending + retries
        self.dedup.preload([*self.state.visited_urls, *(url for url, _ in pending)])
        self.harvester.subdomains.update(self.state.custom_data.get("subdomains", []))
        self.harvester.external_links.extend(self.state.custom_data.get("external_links", []))
        self.harvester.cross_domain_js.extend(self.state.custom_data.get("cross_domain_js", []))
        self.hidden_paths.extend(self.state.custom_data.get("hidden_paths", []))
        if self.fuzzer is not None:
            self.fuzzer.effective_params.update(self.state.custom_data.get("effective_params", {}))

        if len(pending) > self.frontier.maxsize:
            logger.warning(f"Checkpoint holds {len(pending)} pending URLs; keeping the first {self.frontier.maxsize}")
            pending = pending[: self.frontier.maxsize]
        restored = 0
        for url, depth in pending:
            try:
                canonical = canonicalize(url)
            except InvalidUrlError:
                logger.warning(f"Skipping unparseable pending URL: {url!r}")
                continue
            await self.frontier.push(canonical, depth, discovered_by="checkpoint")
            restored += 1
        logger.info(
            f"Resuming {self.task_id}: {len(self.state.visited_urls)} visited, {restored} pending URLs restored"
        )

    @staticmethod
    def _enqueued_before(state: CrawlState) -> int:
        return len(state.visited_urls) + len(state.pending_urls) + len(state.failures_to_retry())

    def _passive_enabled(self) -> bool:
        settings = self.settings
        return bool(
            settings.passive_robots
            or settings.passive_sitemap
            or settings.passive_common_paths
            or settings.burp_file
            or settings.har_file
            or self._archive_sources()
        )

    def _archive_sources(self) -> list[ArchiveSource]:
        if self._archives is not None:
            return self._archives
        sources: list[ArchiveSource] = []
        if self.settings.passive_wayback:
            sources.append(WaybackSource())
        if self.settings.passive_commoncrawl:
            sources.append(CommonCrawlSource())
        if self.settings.virustotal_api_key:
            sources.append(VirusTotalSource(self.settings.virustotal_api_key))
        return sources

    def _get_passive_client(self) -> httpx.AsyncClient:
        if self._passive_client is None:
            self._passive_client = httpx.AsyncClient(
                transport=self._transport,
                headers={"User-Agent": self.settings.get_random_user_agent()},
                follow_redirects=True,
                timeout=self.settings.request_timeout,
            )
        return self._passive_client

    async def _handle_entry(self, entry: FrontierEntry) -> None:
        """One fetch-extract-harvest cycle for a popped frontier entry."""
        assert self.driver is not None
        url = entry.key
        outcome = await self.driver.drive(entry)
        if outcome.error is not None:
            self.state.mark_failed(url, str(outcome.error), depth=entry.depth)
            await self._emit(ProgressKind.PAGE_FAILED, outcome.error.kind.value, url=url)
            return

        result = outcome.result
        assert result is not None
        self.state.mark_visited(url, depth=entry.depth)
        if result.status >= 400:
            self.state.mark_failed(url, f"HTTP {result.status}")
        self.state.add_discovered(result.links)
        self.state.add_forms(result.forms)
        self.state.add_apis(result.apis)
        if entry.discovered_by == "common_paths" and result.status in HIDDEN_PATH_STATUSES:
            self._record_hidden_path(url)

        await self.harvester.harvest_result(result)
        adjustment = self.learner.observe(result)
        if adjustment is not None:
            await self._emit(ProgressKind.WEIGHTS_ADJUSTED, "; ".join(adjustment.reasons))
        if self.fuzzer is not None:
            await self.fuzzer.fuzz(result)

        result.body = None
        await self.emitter.emit_result(result)
        await self._emit(ProgressKind.PAGE_DONE, f"{result.status} depth={entry.depth}", url=url)

    def _record_hidden_path(self, url: str) -> None:
        if url not in self.hidden_paths and len(self.hidden_paths) < self.settings.hidden_paths_cap:
            self.hidden_paths.append(url)
            logger.info(f"Hidden path responded: {url}")

    async def _checkpoint_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.checkpoint_interval)
            await self.save_checkpoint()

    async def save_checkpoint(self) -> Path | None:
        """Snapshot the crawl; a failed write is logged and retried on the next tick."""
        self._sync_state()
        try:
            path = await self.store.save(self.state)
        except CheckpointWriteError as exc:
            logger.warning(f"Checkpoint write failed, will retry: {exc}")
            return None
        await self._emit(ProgressKind.CHECKPOINT_SAVED, str(path))
        return path

    def _sync_state(self) -> None:
        self.state.set_pending((entry.key, entry.depth) for entry in self.frontier.snapshot(include_in_flight=True))
        self.state.statistics = self._statistics()
        self.state.custom_data.update(
            {
                "weights": self.frontier.weights.to_dict(),
                "subdomains": sorted(self.harvester.subdomains),
                "external_links": list(self.harvester.external_links),
                "cross_domain_js": list(self.harvester.cross_domain_js),
                "hidden_paths": list(self.hidden_paths),
                "effective_params": dict(self.fuzzer.effective_params) if self.fuzzer else {},
            }
        )

    def _statistics(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "harvester": self.harvester.get_stats(),
            "scope": self.scope.get_stats(),
            "frontier": self.frontier.get_stats(),
            "learner": self.learner.get_stats(),
            "rate_limit": self.bucket.get_stats(),
            "sinks": self.emitter.get_stats(),
        }
        if self._pool is not None:
            stats["workers"] = self._pool.get_stats()
        if self.passive_report is not None:
            stats["passive"] = self.passive_report.to_dict()
        if self.fuzzer is not None:
            stats["fuzzer"] = self.fuzzer.get_stats()
        return stats

    def build_summary(self) -> CrawlSummary:
        state = self.state
        duration = time.monotonic() - self._started_at if self._started_at else 0.0
        return CrawlSummary(
            task_id=self.task_id,
            target_url=state.target_url,
            status=state.status.value,
            total_crawled=state.total_crawled,
            total_failed=state.total_failed,
            duration_seconds=duration,
            discovered_urls=len(state.discovered_urls),
            forms=len(state.discovered_forms),
            apis=list(state.discovered_apis),
            subdomains=sorted(self.harvester.subdomains),
            external_links=list(self.harvester.external_links),
            cross_domain_js=list(self.harvester.cross_domain_js),
            hidden_paths=list(self.hidden_paths),
            dedup_stats=self.dedup.get_stats(),
            weights=self.frontier.weights.to_dict(),
            weight_adjustments=[adjustment.to_dict() for adjustment in self.learner.adjustments],
            effective_params=dict(self.fuzzer.effective_params) if self.fuzzer else {},
            statistics=self._statistics(),
        )

    async def _emit(self, kind: ProgressKind, detail: str = "", *, url: str | None = None) -> None:
        await self.emitter.emit_progress(ProgressEvent(kind=kind, detail=detail, url=url))

    def _log_completion(self, summary: CrawlSummary) -> None:
        rate = summary.total_crawled / summary.duration_seconds if summary.duration_seconds > 0 else 0
        logger.info(
            f"Crawl {summary.status}: {summary.total_crawled} pages crawled, {summary.total_failed} failed "
            f"in {summary.duration_seconds:.1f}s ({rate:.1f} pages/sec), "
            f"{len(self.frontier.snapshot())} pending"
        )
        throttled = self.bucket.get_stats()["throttled"]
        if throttled:
            logger.info(f"Rate limiter throttled {throttled} times; final rate {self.bucket.current_rate:.2f}/s")
