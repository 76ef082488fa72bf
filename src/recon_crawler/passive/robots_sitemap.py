"""robots.txt and sitemap discovery.

Disallowed paths are interesting to a recon crawl, so both ``Allow`` and
``Disallow`` entries become candidate URLs alongside sitemap locations.
Sitemap indexes are followed breadth-first with a bound on how many
sitemap documents are read.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import gzip
import logging

import httpx
from lxml import etree  # type: ignore[import-untyped]

from ..runtime.rate_limit import TokenBucket


logger = logging.getLogger(__name__)

SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap.php",
    "/sitemap/",
    "/sitemap/sitemap.xml",
    "/sitemaps.xml",
)
_SKIP_DISALLOW = frozenset({"", "/", "/*"})
_SKIP_ALLOW = frozenset({"", "/"})
_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, recover=True, huge_tree=False)


@dataclass(slots=True)
class RobotsInfo:
    disallow: list[str] = field(default_factory=list)
    allow: list[str] = field(default_factory=list)
    sitemaps: list[str] = field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return self.disallow + self.allow


@dataclass(slots=True)
class SitemapDocument:
    """Locations found in one sitemap: page URLs or nested sitemaps."""

    urls: list[str] = field(default_factory=list)
    sitemaps: list[str] = field(default_factory=list)


def _join(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def parse_robots(text: str, base_url: str) -> RobotsInfo:
    """Collect Allow/Disallow paths (as absolute URLs) and Sitemap directives."""
    info = RobotsInfo()
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if ":" not in line:
            continue
        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()
        if directive == "disallow" and value not in _SKIP_DISALLOW:
            info.disallow.append(_join(base_url, value))
        elif directive == "allow" and value not in _SKIP_ALLOW:
            info.allow.append(_join(base_url, value))
        elif directive == "sitemap" and value:
            info.sitemaps.append(value)
    return info


def parse_sitemap(content: bytes) -> SitemapDocument:
    """Parse a ``urlset`` or ``sitemapindex`` document; gzip bodies are unpacked.

    Malformed XML yields an empty document.
    """
    if content[:2] == b"\x1f\x8b":
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as exc:
            logger.warning(f"Cannot decompress gzipped sitemap: {exc}")
            return SitemapDocument()

    document = SitemapDocument()
    if not content.strip():
        return document
    try:
        root = etree.fromstring(content, parser=_XML_PARSER)
    except etree.XMLSyntaxError as exc:
        logger.warning(f"XML syntax error parsing sitemap: {exc}")
        return document
    if root is None:
        return document

    for url_elem in root.findall("{*}url"):
        loc = url_elem.find("{*}loc")
        if loc is not None and loc.text and loc.text.strip():
            document.urls.append(loc.text.strip())
    for sitemap_elem in root.findall("{*}sitemap"):
        loc = sitemap_elem.find("{*}loc")
        if loc is not None and loc.text and loc.text.strip():
            document.sitemaps.append(loc.text.strip())
    return document


class RobotsSitemapSource:
    """Fetch robots.txt and every reachable sitemap of one origin."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        bucket: TokenBucket | None = None,
        max_sitemaps: int = 50,
        sitemap_paths: tuple[str, ...] = SITEMAP_PATHS,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.max_sitemaps = max_sitemaps
        self.sitemap_paths = sitemap_paths
        self.sitemaps_read = 0

    async def fetch_robots(self, base_url: str) -> RobotsInfo:
        body = await self._get(_join(base_url, "robots.txt"))
        if body is None:
            return RobotsInfo()
        info = parse_robots(body.decode("utf-8", errors="replace"), base_url)
        logger.info(
            f"robots.txt: {len(info.disallow)} disallow, {len(info.allow)} allow, {len(info.sitemaps)} sitemaps"
        )
        return info

    async def fetch_sitemaps(self, base_url: str, extra: list[str] | None = None) -> list[str]:
        """Page URLs from the well-known sitemap paths plus ``extra`` sitemap URLs."""
        queue = deque([_join(base_url, path) for path in self.sitemap_paths] + list(extra or []))
        seen: set[str] = set()
        found: list[str] = []
        found_seen: set[str] = set()

        while queue and self.sitemaps_read < self.max_sitemaps:
            sitemap_url = queue.popleft()
            if sitemap_url in seen:
                continue
            seen.add(sitemap_url)
            body = await self._get(sitemap_url)
            if body is None:
                continue
            self.sitemaps_read += 1
            document = parse_sitemap(body)
            for url in document.urls:
                if url not in found_seen:
                    found_seen.add(url)
                    found.append(url)
            queue.extend(nested for nested in document.sitemaps if nested not in seen)
            logger.debug(f"Sitemap {sitemap_url}: {len(document.urls)} URLs, {len(document.sitemaps)} nested")

        if queue:
            logger.warning(f"Stopped after {self.max_sitemaps} sitemaps; {len(queue)} left unread")
        logger.info(f"Sitemaps yielded {len(found)} URLs from {self.sitemaps_read} documents")
        return found

    async def _get(self, url: str) -> bytes | None:
        if self.bucket is not None:
            await self.bucket.acquire()
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as exc:
            logger.debug(f"Passive fetch failed for {url}: {type(exc).__name__}: {exc}")
            return None
        if response.status_code != 200 or not response.content:
            logger.debug(f"Passive fetch {url} returned HTTP {response.status_code}")
            return None
        return response.content
