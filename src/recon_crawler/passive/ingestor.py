"""Seed the frontier from passive sources before the main crawl loop.

Every URL a source yields is handed to the link harvester as a depth-1
link, so scope and dedup rules apply exactly as for crawled links. A
source that fails is logged and recorded; it never aborts the crawl.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
from typing import Any

import httpx

from ..domain.models import Form
from ..errors import InvalidUrlError, PassiveSourceError
from ..observability.metrics import PASSIVE_URLS
from ..runtime.rate_limit import TokenBucket
from ..services.link_harvester import LinkHarvester
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize
from .archives import ArchiveSource
from .common_paths import common_path_urls
from .robots_sitemap import RobotsSitemapSource
from .traffic_import import ImportedTraffic, load_burp, load_har


logger = logging.getLogger(__name__)

PASSIVE_DEPTH = 1


@dataclass(slots=True)
class SourceOutcome:
    found: int = 0
    enqueued: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"found": self.found, "enqueued": self.enqueued, "error": self.error}


@dataclass(slots=True)
class IngestReport:
    sources: dict[str, SourceOutcome] = field(default_factory=dict)
    forms: list[Form] = field(default_factory=list)
    apis: list[str] = field(default_factory=list)

    @property
    def enqueued(self) -> int:
        return sum(outcome.enqueued for outcome in self.sources.values())

    @property
    def failures(self) -> dict[str, str]:
        return {name: outcome.error for name, outcome in self.sources.items() if outcome.error}

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": {name: outcome.to_dict() for name, outcome in self.sources.items()},
            "forms": len(self.forms),
            "apis": len(self.apis),
        }


class PassiveIngestor:
    def __init__(
        self,
        harvester: LinkHarvester,
        client: httpx.AsyncClient,
        *,
        robots: bool = True,
        sitemap: bool = True,
        common_paths: bool = False,
        archives: Iterable[ArchiveSource] = (),
        archive_limit: int = 1000,
        burp_file: str = "",
        har_file: str = "",
        bucket: TokenBucket | None = None,
    ) -> None:
        self.harvester = harvester
        self.client = client
        self.robots = robots
        self.sitemap = sitemap
        self.common_paths = common_paths
        self.archives = list(archives)
        self.archive_limit = archive_limit
        self.burp_file = burp_file
        self.har_file = har_file
        self.robots_sitemap = RobotsSitemapSource(client, bucket=bucket)

    async def ingest(self, target: CanonicalUrl) -> IngestReport:
        """Run every enabled source against ``target`` and enqueue what they find."""
        report = IngestReport()

        for name, path, loader in (("burp", self.burp_file, load_burp), ("har", self.har_file, load_har)):
            if path:
                await self._import_traffic(name, path, loader, report)

        base_url = target.origin
        extra_sitemaps: list[str] = []
        if self.robots:
            info = await self.robots_sitemap.fetch_robots(base_url)
            extra_sitemaps = info.sitemaps
            await self._submit_all("robots", info.urls, report)
        if self.sitemap:
            urls = await self.robots_sitemap.fetch_sitemaps(base_url, extra_sitemaps)
            await self._submit_all("sitemap", urls, report)
        if self.common_paths:
            await self._submit_all("common_paths", common_path_urls(base_url), report)

        if self.archives:
            results = await asyncio.gather(
                *(self._fetch_archive(source, target.host) for source in self.archives),
            )
            for source, (urls, error) in zip(self.archives, results, strict=True):
                if error is not None:
                    report.sources[source.name] = SourceOutcome(error=error)
                    continue
                await self._submit_all(source.name, urls, report)

        logger.info(f"Passive sources enqueued {report.enqueued} URLs: {report.to_dict()['sources']}")
        return report

    async def _fetch_archive(self, source: ArchiveSource, domain: str) -> tuple[list[str], str | None]:
        try:
            urls = await source.fetch_urls(self.client, domain, self.archive_limit)
        except PassiveSourceError as exc:
            logger.warning(f"Passive source {source.name} failed: {exc}")
            return [], str(exc)
        logger.info(f"Passive source {source.name} returned {len(urls)} URLs")
        return urls, None

    async def _import_traffic(self, name: str, path: str, loader, report: IngestReport) -> None:
        try:
            traffic: ImportedTraffic = await asyncio.to_thread(loader, path)
        except PassiveSourceError as exc:
            logger.warning(f"Traffic import from {path} failed: {exc}")
            report.sources[name] = SourceOutcome(error=str(exc))
            return

        outcome = await self._submit_all(name, traffic.urls, report)
        for form in traffic.forms:
            try:
                action = canonicalize(form.action).serialize()
            except InvalidUrlError:
                continue
            report.forms.append(Form(action=action, method=form.method, fields=form.fields))
            if await self.harvester.submit(action, depth=PASSIVE_DEPTH, discovered_by=name, from_form=True):
                outcome.enqueued += 1
        for api in traffic.apis:
            if api not in report.apis:
                report.apis.append(api)

    async def _submit_all(self, name: str, urls: list[str], report: IngestReport) -> SourceOutcome:
        outcome = report.sources.setdefault(name, SourceOutcome())
        outcome.found += len(urls)
        PASSIVE_URLS.labels(source=name).inc(len(urls))
        for url in urls:
            if self.harvester.exhausted:
                break
            if await self.harvester.submit(url, depth=PASSIVE_DEPTH, discovered_by=name):
                outcome.enqueued += 1
        return outcome
