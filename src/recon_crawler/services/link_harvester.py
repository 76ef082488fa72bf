"""Turn extracted links into frontier entries.

Every raw link goes through the same pipeline, in order, and the first
stage that rejects it ends its trip:

validator -> canonicalizer -> scope engine -> dedup stack -> frontier

Out-of-scope links on other hosts are kept (up to a cap) as external
links. Scripts admitted from hosts outside the scope mode are listed
(also capped) as cross-domain JS. Hosts that share the target's
registrable domain are collected as subdomains whatever their scope
verdict.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging
from typing import Any

from ..dedup.stack import DecisionKind, DedupStack
from ..domain.models import PageResult
from ..errors import InvalidUrlError
from ..scheduler.frontier import Frontier, FrontierClosed
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize
from ..utils.url_validator import SmartUrlValidator
from .scope_engine import JS_EXTENSIONS, ScopeEngine


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HarvestReport:
    """Per-call tally of what happened to each link."""

    considered: int = 0
    enqueued: int = 0
    invalid: int = 0
    out_of_scope: int = 0
    duplicates: int = 0
    pattern_capped: int = 0
    depth_limited: int = 0
    cap_reached: bool = False

    def add(self, other: HarvestReport) -> None:
        self.considered += other.considered
        self.enqueued += other.enqueued
        self.invalid += other.invalid
        self.out_of_scope += other.out_of_scope
        self.duplicates += other.duplicates
        self.pattern_capped += other.pattern_capped
        self.depth_limited += other.depth_limited
        self.cap_reached = self.cap_reached or other.cap_reached


class LinkHarvester:
    """Shared by every worker; one instance per crawl.

    ``max_urls`` bounds the number of URLs ever pushed, counting the seed
    and passive sources. ``already_enqueued`` carries that count over
    from a checkpoint.
    """

    def __init__(
        self,
        frontier: Frontier,
        scope: ScopeEngine,
        dedup: DedupStack,
        *,
        max_depth: int = 3,
        max_urls: int = 10000,
        external_links_cap: int = 5000,
        cross_domain_js_cap: int = 1000,
        validator: SmartUrlValidator | None = None,
        already_enqueued: int = 0,
    ) -> None:
        self.frontier = frontier
        self.scope = scope
        self.dedup = dedup
        self.max_depth = max_depth
        self.max_urls = max_urls
        self.external_links_cap = external_links_cap
        self.cross_domain_js_cap = cross_domain_js_cap
        self.validator = validator or SmartUrlValidator()
        self.enqueued = already_enqueued
        self.external_links: list[str] = []
        self.external_dropped = 0
        self.cross_domain_js: list[str] = []
        self.subdomains: set[str] = set()
        self.totals = HarvestReport()
        self._external_seen: set[str] = set()

    @property
    def exhausted(self) -> bool:
        return self.enqueued >= self.max_urls

    async def harvest(
        self,
        links: Iterable[str],
        *,
        parent_depth: int,
        discovered_by: str = "crawl",
        form_actions: Iterable[str] = (),
    ) -> HarvestReport:
        """Push the survivors of ``links`` at ``parent_depth + 1``."""
        report = HarvestReport()
        depth = parent_depth + 1
        actions = set(form_actions)
        links = list(links)

        if depth > self.max_depth:
            report.considered = len(links)
            report.depth_limited = len(links)
            self.totals.add(report)
            return report

        for raw in links:
            if self.exhausted:
                report.cap_reached = True
                break
            report.considered += 1
            try:
                await self._offer(raw, depth, discovered_by, raw in actions, report)
            except FrontierClosed:
                logger.debug(f"Frontier closed while harvesting at depth {depth}")
                break

        self.totals.add(report)
        if report.enqueued:
            logger.debug(f"Queued {report.enqueued}/{report.considered} links at depth {depth}")
        return report

    async def harvest_result(self, result: PageResult) -> HarvestReport:
        """Harvest a fetched page: links (forms flagged) plus its subdomains."""
        self.record_subdomains(result.subdomains)
        return await self.harvest(
            result.links,
            parent_depth=result.depth,
            discovered_by="crawl",
            form_actions=(form.action for form in result.forms),
        )

    async def submit(
        self,
        raw: str,
        *,
        depth: int,
        discovered_by: str,
        from_form: bool = False,
    ) -> bool:
        """Offer a single URL at an explicit depth (seed, passive source, fuzzer).

        Returns:
            True if the URL was pushed onto the frontier
        """
        report = HarvestReport(considered=1)
        if depth > self.max_depth:
            report.depth_limited = 1
        elif self.exhausted:
            report.cap_reached = True
        else:
            try:
                await self._offer(raw, depth, discovered_by, from_form, report)
            except FrontierClosed:
                logger.debug(f"Frontier closed; dropped {raw}")
        self.totals.add(report)
        return report.enqueued == 1

    def record_subdomains(self, hosts: Iterable[str]) -> None:
        for host in hosts:
            host = host.lower().strip(".")
            if host and host != self.scope.target_host and self.scope.is_related_host(host):
                self.subdomains.add(host)

    async def _offer(self, raw: str, depth: int, discovered_by: str, from_form: bool, report: HarvestReport) -> None:
        if not self.validator.is_valid(raw):
            report.invalid += 1
            return
        try:
            url = canonicalize(raw)
        except InvalidUrlError:
            report.invalid += 1
            return

        self.record_subdomains((url.host,))

        decision = self.scope.in_scope(url)
        if not decision.allowed:
            report.out_of_scope += 1
            if url.host != self.scope.target_host:
                self._record_external(url)
            return
        if url.extension in JS_EXTENSIONS and not self.scope.host_in_mode(url.host):
            self._record_cross_domain_js(url)

        verdict = self.dedup.register(url, from_form=from_form)
        if not verdict.accepted:
            if verdict.kind == DecisionKind.PATTERN_CAPPED:
                report.pattern_capped += 1
            else:
                report.duplicates += 1
            return

        self.enqueued += 1
        try:
            await self.frontier.push(url, depth, discovered_by=discovered_by, from_form=from_form)
        except FrontierClosed:
            self.enqueued -= 1
            self.dedup.release(url)
            raise
        report.enqueued += 1

    def _record_external(self, url: CanonicalUrl) -> None:
        key = url.serialize()
        if key in self._external_seen:
            return
        if len(self.external_links) >= self.external_links_cap:
            self.external_dropped += 1
            return
        self._external_seen.add(key)
        self.external_links.append(key)

    def _record_cross_domain_js(self, url: CanonicalUrl) -> None:
        key = url.serialize()
        if key not in self.cross_domain_js and len(self.cross_domain_js) < self.cross_domain_js_cap:
            self.cross_domain_js.append(key)

    def get_stats(self) -> dict[str, Any]:
        return {
            "enqueued": self.enqueued,
            "max_urls": self.max_urls,
            "considered": self.totals.considered,
            "invalid": self.totals.invalid,
            "out_of_scope": self.totals.out_of_scope,
            "duplicates": self.totals.duplicates,
            "pattern_capped": self.totals.pattern_capped,
            "depth_limited": self.totals.depth_limited,
            "external_links": len(self.external_links),
            "external_dropped": self.external_dropped,
            "cross_domain_js": len(self.cross_domain_js),
            "subdomains": len(self.subdomains),
            "validator": self.validator.get_stats(),
        }
