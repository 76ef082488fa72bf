"""Fetcher interface and the default httpx implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
import time
from typing import Protocol, runtime_checkable

import httpx

from ..errors import FetchError, FetchErrorKind
from ..utils.url_canonicalizer import CanonicalUrl


logger = logging.getLogger(__name__)

_HTML_TYPES = ("text/html", "application/xhtml+xml")
_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "name resolution", "no address")
_TLS_MARKERS = ("ssl", "certificate", "tls")

DEFAULT_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Accept-Language": "en,en-US;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}


def decode_body(body: bytes, content_type: str) -> str:
    """Decode with the declared charset, falling back to UTF-8."""
    charset = "utf-8"
    for part in content_type.split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            charset = value.strip("\"'")
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


@dataclass(slots=True, frozen=True)
class FetchOptions:
    timeout: float = 30.0
    max_html_bytes: int = 10 * 1024 * 1024
    max_other_bytes: int = 5 * 1024 * 1024
    headers: dict[str, str] = field(default_factory=dict)

    def body_limit(self, content_type: str) -> int:
        media = content_type.split(";", 1)[0].strip().lower()
        return self.max_html_bytes if media in _HTML_TYPES or not media else self.max_other_bytes


@dataclass(slots=True)
class FetchResponse:
    final_url: str
    status: int
    headers: dict[str, str]
    body: bytes
    elapsed_ms: float
    truncated: bool = False

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def text(self) -> str:
        return decode_body(self.body, self.content_type)


@runtime_checkable
class Fetcher(Protocol):
    async def fetch(self, url: CanonicalUrl, options: FetchOptions) -> FetchResponse: ...

    async def aclose(self) -> None: ...


def classify_transport_error(exc: httpx.HTTPError) -> FetchErrorKind:
    """Map an httpx exception onto a :class:`FetchErrorKind`."""
    message = str(exc).lower()
    if isinstance(exc, httpx.TimeoutException):
        return FetchErrorKind.TIMEOUT
    if isinstance(exc, httpx.ConnectError):
        if any(marker in message for marker in _DNS_MARKERS):
            return FetchErrorKind.DNS
        if any(marker in message for marker in _TLS_MARKERS):
            return FetchErrorKind.TLS
        return FetchErrorKind.CONNECTION_RESET
    if isinstance(exc, httpx.TransportError) and not isinstance(exc, httpx.UnsupportedProtocol):
        return FetchErrorKind.CONNECTION_RESET
    return FetchErrorKind.HTTP


class HttpxFetcher:
    """Plain GET fetcher on a shared ``httpx.AsyncClient``.

    Redirects are followed. Bodies stream in and are cut off at the ceiling
    for the response's content type; the response is then flagged
    ``truncated`` and the rest of the stream is discarded.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        cookies: httpx.Cookies | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        verify: bool = True,
    ) -> None:
        self._client = self._create_client(user_agent, cookies, transport, verify)
        self._closed = False

    @staticmethod
    def _create_client(
        user_agent: str,
        cookies: httpx.Cookies | None,
        transport: httpx.AsyncBaseTransport | None,
        verify: bool,
    ) -> httpx.AsyncClient:
        proxy = None
        if transport is None:
            proxy = os.environ.get("https_proxy") or os.environ.get("HTTPS_PROXY") or os.environ.get("http_proxy")
            proxy = proxy or os.environ.get("HTTP_PROXY")
            if proxy:
                logger.debug(f"Using proxy: {proxy}")

        return httpx.AsyncClient(
            transport=transport,
            headers={"User-Agent": user_agent, **DEFAULT_HEADERS},
            follow_redirects=True,
            max_redirects=10,
            verify=verify,
            proxy=proxy,
            cookies=cookies,
        )

    async def fetch(self, url: CanonicalUrl, options: FetchOptions) -> FetchResponse:
        if self._closed:
            raise FetchError(FetchErrorKind.CANCELLED, f"Fetcher closed before {url}")

        timeout = httpx.Timeout(options.timeout, connect=min(10.0, options.timeout))
        start = time.perf_counter()
        try:
            async with self._client.stream("GET", url.serialize(), headers=options.headers, timeout=timeout) as response:
                headers = {key.lower(): value for key, value in response.headers.items()}
                limit = options.body_limit(headers.get("content-type", ""))
                chunks: list[bytes] = []
                size = 0
                truncated = False
                async for chunk in response.aiter_bytes():
                    if size + len(chunk) > limit:
                        chunks.append(chunk[: limit - size])
                        truncated = True
                        break
                    size += len(chunk)
                    chunks.append(chunk)
                if truncated:
                    logger.debug(f"Truncated {url} at {limit} bytes")
                return FetchResponse(
                    final_url=str(response.url),
                    status=response.status_code,
                    headers=headers,
                    body=b"".join(chunks),
                    elapsed_ms=(time.perf_counter() - start) * 1000,
                    truncated=truncated,
                )
        except httpx.TooManyRedirects as exc:
            raise FetchError(FetchErrorKind.HTTP, f"Too many redirects for {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            kind = classify_transport_error(exc)
            raise FetchError(kind, f"{type(exc).__name__}: {str(exc) or 'no detail'}") from exc

    async def aclose(self) -> None:
        self._closed = True
        await self._client.aclose()

    async def __aenter__(self) -> HttpxFetcher:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
