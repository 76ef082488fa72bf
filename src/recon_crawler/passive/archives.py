"""Historical URL sources: Wayback Machine CDX, CommonCrawl index, VirusTotal.

Each source returns at most ``limit`` URLs for a domain. A failing source
raises :class:`PassiveSourceError`; the ingestor logs it and moves on.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx
import orjson

from ..errors import PassiveSourceError
from ..observability.metrics import FETCH_LATENCY, track_latency


logger = logging.getLogger(__name__)

WAYBACK_CDX_URL = "https://web.archive.org/cdx/search/cdx"
COMMONCRAWL_INDEX_URL = "https://index.commoncrawl.org/{index}-index"
DEFAULT_COMMONCRAWL_INDEX = "CC-MAIN-2024-10"
VIRUSTOTAL_DOMAIN_URLS = "https://www.virustotal.com/api/v3/domains/{domain}/urls"


@runtime_checkable
class ArchiveSource(Protocol):
    name: str

    async def fetch_urls(self, client: httpx.AsyncClient, domain: str, limit: int) -> list[str]: ...


async def _get(client: httpx.AsyncClient, source: str, url: str, **kwargs) -> httpx.Response:
    try:
        with track_latency(FETCH_LATENCY, kind=source):
            response = await client.get(url, **kwargs)
    except httpx.HTTPError as exc:
        raise PassiveSourceError(f"{source} request failed: {type(exc).__name__}: {exc}") from exc
    if response.status_code != 200:
        raise PassiveSourceError(f"{source} returned HTTP {response.status_code}")
    return response


def _loads(source: str, payload: bytes):
    try:
        return orjson.loads(payload)
    except orjson.JSONDecodeError as exc:
        raise PassiveSourceError(f"{source} returned invalid JSON: {exc}") from exc


class WaybackSource:
    """CDX API, one original URL per row; the first row is the header."""

    name = "wayback"

    async def fetch_urls(self, client: httpx.AsyncClient, domain: str, limit: int) -> list[str]:
        params = {
            "url": f"{domain}/*",
            "output": "json",
            "fl": "original",
            "collapse": "urlkey",
            "limit": str(limit),
        }
        response = await _get(client, self.name, WAYBACK_CDX_URL, params=params)
        rows = _loads(self.name, response.content) if response.content.strip() else []
        if not isinstance(rows, list):
            raise PassiveSourceError(f"{self.name} returned unexpected payload")
        urls = [row[0] for row in rows[1:] if isinstance(row, list) and row and isinstance(row[0], str)]
        return urls[:limit]


class CommonCrawlSource:
    """CommonCrawl CDX index; the response is JSON lines."""

    name = "commoncrawl"

    def __init__(self, index: str = DEFAULT_COMMONCRAWL_INDEX) -> None:
        self.index = index

    async def fetch_urls(self, client: httpx.AsyncClient, domain: str, limit: int) -> list[str]:
        params = {"url": f"{domain}/*", "output": "json", "limit": str(limit)}
        response = await _get(client, self.name, COMMONCRAWL_INDEX_URL.format(index=self.index), params=params)
        urls: list[str] = []
        for line in response.content.splitlines():
            if not line.strip():
                continue
            try:
                record = orjson.loads(line)
            except orjson.JSONDecodeError:
                continue
            if isinstance(record, dict) and record.get("url"):
                urls.append(str(record["url"]))
            if len(urls) >= limit:
                break
        return urls


class VirusTotalSource:
    name = "virustotal"

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise PassiveSourceError("VirusTotal API key is not configured")
        self.api_key = api_key

    async def fetch_urls(self, client: httpx.AsyncClient, domain: str, limit: int) -> list[str]:
        response = await _get(
            client,
            self.name,
            VIRUSTOTAL_DOMAIN_URLS.format(domain=domain),
            params={"limit": str(min(limit, 40))},
            headers={"x-apikey": self.api_key},
        )
        payload = _loads(self.name, response.content)
        items = payload.get("data", []) if isinstance(payload, dict) else []
        urls = [
            str(item["attributes"]["url"])
            for item in items
            if isinstance(item, dict) and isinstance(item.get("attributes"), dict) and item["attributes"].get("url")
        ]
        return urls[:limit]
