"""Tests for the web archive sources."""

import httpx
import orjson
import pytest

from recon_crawler.errors import PassiveSourceError
from recon_crawler.passive.archives import CommonCrawlSource, VirusTotalSource, WaybackSource


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_wayback_skips_header_row():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        rows = [["original"], ["http://example.com/old"], ["http://example.com/login.php?x=1"]]
        return httpx.Response(200, content=orjson.dumps(rows))

    async with _client(handler) as client:
        urls = await WaybackSource().fetch_urls(client, "example.com", 10)

    assert urls == ["http://example.com/old", "http://example.com/login.php?x=1"]
    assert seen["url"] == "example.com/*"
    assert seen["limit"] == "10"
    assert seen["collapse"] == "urlkey"


@pytest.mark.asyncio
async def test_wayback_empty_body_means_no_urls():
    async with _client(lambda request: httpx.Response(200, content=b"")) as client:
        assert await WaybackSource().fetch_urls(client, "example.com", 10) == []


@pytest.mark.asyncio
async def test_commoncrawl_reads_json_lines():
    lines = b'{"url": "https://example.com/a"}\nnot-json\n\n{"status": "404"}\n{"url": "https://example.com/b"}\n'

    async with _client(lambda request: httpx.Response(200, content=lines)) as client:
        urls = await CommonCrawlSource(index="CC-MAIN-2025-01").fetch_urls(client, "example.com", 5)

    assert urls == ["https://example.com/a", "https://example.com/b"]


@pytest.mark.asyncio
async def test_commoncrawl_limit():
    lines = b"\n".join(orjson.dumps({"url": f"https://example.com/{i}"}) for i in range(10))

    async with _client(lambda request: httpx.Response(200, content=lines)) as client:
        assert len(await CommonCrawlSource().fetch_urls(client, "example.com", 3)) == 3


@pytest.mark.asyncio
async def test_virustotal_sends_api_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers.get("x-apikey")
        seen["path"] = request.url.path
        payload = {"data": [{"attributes": {"url": "https://example.com/secret"}}, {"attributes": {}}]}
        return httpx.Response(200, content=orjson.dumps(payload))

    async with _client(handler) as client:
        urls = await VirusTotalSource("k3y").fetch_urls(client, "example.com", 100)

    assert urls == ["https://example.com/secret"]
    assert seen == {"key": "k3y", "path": "/api/v3/domains/example.com/urls"}


def test_virustotal_requires_key():
    with pytest.raises(PassiveSourceError):
        VirusTotalSource("")


class TestFailures:
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(PassiveSourceError, match="HTTP 503"):
                await WaybackSource().fetch_urls(client, "example.com", 10)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(PassiveSourceError, match="ReadTimeout"):
                await CommonCrawlSource().fetch_urls(client, "example.com", 10)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with _client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(PassiveSourceError, match="invalid JSON"):
                await VirusTotalSource("k").fetch_urls(client, "example.com", 10)
