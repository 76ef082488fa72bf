"""Artifact extractors for HTML, JavaScript and CSS bodies.

Each extractor turns one response body into :class:`ExtractedArtifacts`
with absolute URLs. The registry maps a response's content type (or, when
the server is vague, its URL extension) to the extractors that apply.
"""

from __future__ import annotations

from enum import Enum
import logging
import re
from typing import Protocol, runtime_checkable
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from ..domain.models import ExtractedArtifacts, Form, FormField
from ..errors import ExtractorError
from .fetcher import decode_body


logger = logging.getLogger(__name__)

SUBDOMAIN_RE = re.compile(r"https?://((?:[a-zA-Z0-9][-a-zA-Z0-9]*\.)+[a-zA-Z]{2,})")

_JS_API_PATTERNS = (
    re.compile(r"""['"](/api/[^'"\s]*)['"]"""),
    re.compile(r"""['"](/v\d+/[^'"\s]*)['"]"""),
    re.compile(r"""fetch\s*\(\s*['"`]([^'"`\s]+)"""),
    re.compile(r"""axios\.(?:get|post|put|delete|patch)\s*\(\s*['"`]([^'"`\s]+)"""),
    re.compile(r"""\$\.ajax\s*\(\s*\{[^}]*?url\s*:\s*['"]([^'"\s]+)"""),
    re.compile(r"""\$\.(?:get|post|getJSON)\s*\(\s*['"]([^'"\s]+)"""),
    re.compile(r"""\.open\s*\(\s*['"](?:GET|POST|PUT|DELETE|PATCH)['"]\s*,\s*['"]([^'"\s]+)""", re.IGNORECASE),
)
_JS_ABSOLUTE_RE = re.compile(r"""(https?://[^\s'"`<>\\]+)""")
_JS_PATH_RE = re.compile(r"""['"](/[a-zA-Z0-9_\-/.]{3,})['"]""")
_CSS_URL_RE = re.compile(r"""url\(\s*['"]?([^'")\s]+)['"]?\s*\)""", re.IGNORECASE)
_CSS_IMPORT_RE = re.compile(r"""@import\s+['"]([^'"]+)['"]""", re.IGNORECASE)

_LINK_ATTRS: tuple[tuple[str, str], ...] = (
    ("a", "href"),
    ("area", "href"),
    ("iframe", "src"),
    ("frame", "src"),
)
_ASSET_ATTRS: tuple[tuple[str, str], ...] = (
    ("script", "src"),
    ("link", "href"),
    ("img", "src"),
    ("source", "src"),
    ("embed", "src"),
)
_SKIP_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:", "about:", "blob:")


class ExtractorKind(str, Enum):
    HTML = "html"
    JS = "js"
    CSS = "css"


@runtime_checkable
class Extractor(Protocol):
    kind: ExtractorKind

    def extract(self, final_url: str, content_type: str, body: bytes) -> ExtractedArtifacts: ...


def _absolutize(base: str, raw: str) -> str | None:
    raw = raw.strip()
    if not raw or raw.lower().startswith(_SKIP_PREFIXES):
        return None
    absolute = urljoin(base, raw)
    if urlsplit(absolute).scheme not in ("http", "https"):
        return None
    return absolute.split("#", 1)[0]


def _append_unique(target: list[str], value: str | None, seen: set[str]) -> None:
    if value and value not in seen:
        seen.add(value)
        target.append(value)


def find_subdomains(text: str) -> list[str]:
    """Hostnames of absolute http(s) URLs in ``text``, lowercased, first-seen order."""
    hosts: list[str] = []
    seen: set[str] = set()
    for match in SUBDOMAIN_RE.finditer(text):
        _append_unique(hosts, match.group(1).lower(), seen)
    return hosts


class JsExtractor:
    kind = ExtractorKind.JS

    def extract(self, final_url: str, content_type: str, body: bytes) -> ExtractedArtifacts:
        return self.extract_text(final_url, decode_body(body, content_type))

    def extract_text(self, base_url: str, text: str) -> ExtractedArtifacts:
        artifacts = ExtractedArtifacts()
        link_seen: set[str] = set()
        api_seen: set[str] = set()

        for pattern in _JS_API_PATTERNS:
            for match in pattern.finditer(text):
                absolute = _absolutize(base_url, match.group(1))
                _append_unique(artifacts.apis, absolute, api_seen)
                _append_unique(artifacts.links, absolute, link_seen)

        for match in _JS_ABSOLUTE_RE.finditer(text):
            _append_unique(artifacts.links, _absolutize(base_url, match.group(1).rstrip(").,;")), link_seen)

        for match in _JS_PATH_RE.finditer(text):
            path = match.group(1)
            if "//" in path:
                continue
            _append_unique(artifacts.links, _absolutize(base_url, path), link_seen)

        artifacts.subdomains = find_subdomains(text)
        return artifacts


class CssExtractor:
    kind = ExtractorKind.CSS

    def extract(self, final_url: str, content_type: str, body: bytes) -> ExtractedArtifacts:
        return self.extract_text(final_url, decode_body(body, content_type))

    def extract_text(self, base_url: str, text: str) -> ExtractedArtifacts:
        artifacts = ExtractedArtifacts()
        seen: set[str] = set()
        for pattern in (_CSS_IMPORT_RE, _CSS_URL_RE):
            for match in pattern.finditer(text):
                absolute = _absolutize(base_url, match.group(1))
                _append_unique(artifacts.assets, absolute, seen)
        artifacts.links = list(artifacts.assets)
        artifacts.subdomains = find_subdomains(text)
        return artifacts


class HtmlExtractor:
    """Links, assets, forms and inline script/style endpoints from an HTML page."""

    kind = ExtractorKind.HTML

    def __init__(self, js: JsExtractor | None = None, css: CssExtractor | None = None) -> None:
        self._js = js or JsExtractor()
        self._css = css or CssExtractor()

    def extract(self, final_url: str, content_type: str, body: bytes) -> ExtractedArtifacts:
        text = decode_body(body, content_type)
        try:
            soup = BeautifulSoup(text, "lxml")
        except Exception as exc:
            raise ExtractorError(f"HTML parse failed for {final_url}: {exc}") from exc

        base_url = final_url
        base_tag = soup.find("base", href=True)
        if base_tag:
            base_url = urljoin(final_url, base_tag["href"])

        artifacts = ExtractedArtifacts(html_content=text)
        link_seen: set[str] = set()
        asset_seen: set[str] = set()

        for tag_name, attr in _LINK_ATTRS:
            for tag in soup.find_all(tag_name):
                _append_unique(artifacts.links, _absolutize(base_url, tag.get(attr) or ""), link_seen)

        for tag_name, attr in _ASSET_ATTRS:
            for tag in soup.find_all(tag_name):
                absolute = _absolutize(base_url, tag.get(attr) or "")
                _append_unique(artifacts.assets, absolute, asset_seen)
                _append_unique(artifacts.links, absolute, link_seen)

        for form_tag in soup.find_all("form"):
            form = self._parse_form(base_url, final_url, form_tag)
            if form is not None:
                artifacts.forms.append(form)
                _append_unique(artifacts.links, form.action, link_seen)

        for script in soup.find_all("script", src=False):
            if script.string:
                artifacts.merge(self._js.extract_text(base_url, script.string))
        for style in soup.find_all("style"):
            if style.string:
                artifacts.merge(self._css.extract_text(base_url, style.string))
        for tag in soup.find_all(style=True):
            artifacts.merge(self._css.extract_text(base_url, tag["style"]))

        for host in find_subdomains(text):
            if host not in artifacts.subdomains:
                artifacts.subdomains.append(host)
        return artifacts

    @staticmethod
    def _parse_form(base_url: str, page_url: str, form_tag) -> Form | None:
        action = _absolutize(base_url, form_tag.get("action") or "") if form_tag.get("action") else page_url
        if not action:
            return None
        fields: list[FormField] = []
        for field_tag in form_tag.find_all(["input", "select", "textarea", "button"]):
            name = field_tag.get("name")
            if not name:
                continue
            field_type = field_tag.get("type") or ("text" if field_tag.name != "select" else "select")
            fields.append(
                FormField(
                    name=name,
                    type=field_type.lower(),
                    value=field_tag.get("value"),
                    required=field_tag.has_attr("required"),
                )
            )
        method = (form_tag.get("method") or "GET").upper()
        return Form(action=action, method=method, fields=tuple(fields))


_JS_MEDIA = ("javascript", "ecmascript", "x-js")
_JS_SUFFIXES = (".js", ".mjs", ".jsx")


class ExtractorRegistry:
    """Extractors by kind, selected per response."""

    def __init__(self) -> None:
        self._extractors: dict[ExtractorKind, list[Extractor]] = {}

    def register(self, extractor: Extractor) -> None:
        self._extractors.setdefault(ExtractorKind(extractor.kind), []).append(extractor)

    def kind_for(self, content_type: str, url: str) -> ExtractorKind | None:
        media = content_type.split(";", 1)[0].strip().lower()
        path = urlsplit(url).path.lower()
        if "html" in media or (not media and not path.endswith(_JS_SUFFIXES + (".css",))):
            return ExtractorKind.HTML
        if any(token in media for token in _JS_MEDIA) or path.endswith(_JS_SUFFIXES):
            return ExtractorKind.JS
        if media == "text/css" or path.endswith(".css"):
            return ExtractorKind.CSS
        if media.startswith("text/") and not media.endswith(("plain", "csv")):
            return ExtractorKind.HTML
        return None

    def for_response(self, content_type: str, url: str) -> list[Extractor]:
        kind = self.kind_for(content_type, url)
        return list(self._extractors.get(kind, [])) if kind else []

    @classmethod
    def default(cls) -> ExtractorRegistry:
        registry = cls()
        js = JsExtractor()
        css = CssExtractor()
        registry.register(HtmlExtractor(js, css))
        registry.register(js)
        registry.register(css)
        return registry
