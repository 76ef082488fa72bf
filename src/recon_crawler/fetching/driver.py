"""Fetch-and-extract driver: one frontier entry in, one page result out."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from ..dedup.stack import DedupStack
from ..domain.models import ExtractedArtifacts, PageResult
from ..errors import ExtractorError, FetchError
from ..observability.metrics import FETCH_ERRORS, FETCH_LATENCY, PAGES_FETCHED, status_class
from ..observability.tracing import create_span
from ..runtime.memory import MemoryGuard
from ..runtime.rate_limit import TokenBucket
from ..runtime.retry import AdaptiveTimeout, RetryPolicy
from ..scheduler.frontier import FrontierEntry
from ..utils.static_detector import SmartStaticDetector
from ..utils.url_classifier import UrlKind, classify_url, value_type_for
from .extractors import ExtractorRegistry
from .fetcher import Fetcher, FetchOptions, FetchResponse


logger = logging.getLogger(__name__)

# Body ceiling applied while the process is over its soft memory cap
PRESSURE_BODY_BYTES = 512 * 1024


@dataclass(slots=True)
class DriveOutcome:
    """Either a page result or the final fetch error for an entry."""

    entry: FrontierEntry
    result: PageResult | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class FetchDriver:
    """Fetch an entry under the rate limit and retry policy, then extract it.

    Static responses produce a skeletal result without extraction. HTML
    pages are checked against the DOM near-duplicate index; a similar page
    is still returned with its links so they get harvested.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        extractors: ExtractorRegistry | None = None,
        dedup: DedupStack | None = None,
        bucket: TokenBucket | None = None,
        retry: RetryPolicy | None = None,
        timeout: AdaptiveTimeout | None = None,
        max_html_bytes: int = 10 * 1024 * 1024,
        max_other_bytes: int = 5 * 1024 * 1024,
        memory_guard: MemoryGuard | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.extractors = extractors or ExtractorRegistry.default()
        self.dedup = dedup
        self.bucket = bucket or TokenBucket()
        self.retry = retry or RetryPolicy()
        self.timeout = timeout or AdaptiveTimeout()
        self.max_html_bytes = max_html_bytes
        self.max_other_bytes = max_other_bytes
        self.memory_guard = memory_guard
        self.static_detector = SmartStaticDetector()
        self._memory_warned = False

    async def drive(self, entry: FrontierEntry) -> DriveOutcome:
        url = entry.key
        with create_span("recon.page", attributes={"url": url, "depth": entry.depth}) as span:
            try:
                response = await self.retry.run(lambda: self._fetch_once(entry), label=url)
            except FetchError as exc:
                FETCH_ERRORS.labels(kind=exc.kind.value).inc()
                span.set_attribute("fetch.error", exc.kind.value)
                logger.debug(f"Fetch failed for {url}: {exc}")
                return DriveOutcome(entry, error=exc)

            span.set_attribute("http.status_code", response.status)
            return DriveOutcome(entry, result=self._build_result(entry, response))

    async def _fetch_once(self, entry: FrontierEntry) -> FetchResponse:
        await self.bucket.acquire()
        max_html, max_other = self.max_html_bytes, self.max_other_bytes
        if self._under_memory_pressure():
            max_html = min(max_html, PRESSURE_BODY_BYTES)
            max_other = min(max_other, PRESSURE_BODY_BYTES)
        options = FetchOptions(
            timeout=self.timeout.current(),
            max_html_bytes=max_html,
            max_other_bytes=max_other,
        )
        response = await self.fetcher.fetch(entry.url, options)
        self.bucket.record_response(response.status)
        self.timeout.record(response.elapsed_ms / 1000)
        FETCH_LATENCY.labels(kind="page").observe(response.elapsed_ms / 1000)
        PAGES_FETCHED.labels(status_class=status_class(response.status)).inc()
        return response

    def _build_result(self, entry: FrontierEntry, response: FetchResponse) -> PageResult:
        value_type = value_type_for(entry.key, from_form=entry.from_form).value
        result = PageResult(
            url=entry.key,
            final_url=response.final_url,
            status=response.status,
            headers=dict(response.headers),
            content_type=response.content_type,
            depth=entry.depth,
            discovered_by=entry.discovered_by,
            value_type=value_type,
            elapsed_ms=response.elapsed_ms,
            truncated=response.truncated,
        )

        verdict = self.static_detector.detect(response.final_url, response.content_type, response.body[:16])
        # Stylesheets are still mined for url() and @import references
        if verdict.is_static and verdict.kind != "css":
            result.is_static = True
            result.static_reason = f"{verdict.reason}:{verdict.kind}"
            return result

        result.body = response.body
        artifacts = self._extract(result, response)
        result.links = artifacts.links
        result.assets = artifacts.assets
        result.forms = artifacts.forms
        result.subdomains = artifacts.subdomains
        result.apis = list(artifacts.apis)
        known_apis = set(result.apis)
        for link in artifacts.links:
            if link not in known_apis and classify_url(link) == UrlKind.AJAX:
                result.apis.append(link)
                known_apis.add(link)

        if artifacts.html_content and response.status == 200 and self._dom_check_allowed():
            match = self.dedup.check_near_duplicate(entry.key, artifacts.html_content)
            if match is not None:
                result.is_similar = True
                result.similar_to = match.url
                result.similarity = round(match.similarity, 4)
        return result

    def _extract(self, result: PageResult, response: FetchResponse) -> ExtractedArtifacts:
        merged = ExtractedArtifacts()
        for extractor in self.extractors.for_response(response.content_type, response.final_url):
            try:
                merged.merge(extractor.extract(response.final_url, response.content_type, response.body))
            except ExtractorError as exc:
                result.extractor_errors.append(str(exc))
                logger.debug(f"Extractor {extractor.kind.value} failed on {result.url}: {exc}")
            except Exception as exc:
                result.extractor_errors.append(f"{type(exc).__name__}: {exc}")
                logger.warning(f"Extractor {extractor.kind.value} crashed on {result.url}: {exc}")
        return merged

    def _under_memory_pressure(self) -> bool:
        if self.memory_guard is None or not self.memory_guard.over_cap():
            return False
        if not self._memory_warned:
            self._memory_warned = True
            logger.warning(
                f"Memory soft cap reached ({self.memory_guard.last_rss_mb:.0f} MiB); "
                f"capping bodies at {PRESSURE_BODY_BYTES} bytes and skipping DOM near-duplicate checks"
            )
        return True

    def _dom_check_allowed(self) -> bool:
        if self.dedup is None or not self.dedup.dom_enabled:
            return False
        return not self._under_memory_pressure()
