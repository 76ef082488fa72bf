"""Import captured traffic: Burp Suite XML exports and HAR 1.2 files."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
import logging
from pathlib import Path
from urllib.parse import parse_qsl

from lxml import etree  # type: ignore[import-untyped]
import orjson

from ..domain.models import Form, FormField
from ..errors import PassiveSourceError


logger = logging.getLogger(__name__)

API_MARKERS = ("/api/", "/v1/", "/v2/", "/v3/", "/rest/", "/graphql", "/json", "/ajax/", "/xhr/")
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)


def is_api_url(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in API_MARKERS)


@dataclass(slots=True)
class ImportedTraffic:
    source: str
    requests: int = 0
    urls: list[str] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    apis: list[str] = field(default_factory=list)

    def add_url(self, url: str) -> None:
        self.urls.append(url)
        if is_api_url(url):
            self.apis.append(url)

    def get_stats(self) -> dict[str, int]:
        return {
            "requests": self.requests,
            "urls": len(self.urls),
            "forms": len(self.forms),
            "apis": len(self.apis),
        }


def _form_from_pairs(action: str, method: str, pairs: list[tuple[str, str]]) -> Form | None:
    fields = tuple(FormField(name=name, type="text", value=value) for name, value in pairs if name)
    if not fields:
        return None
    return Form(action=action, method=method.upper(), fields=fields)


def _burp_request_text(element) -> str:
    text = element.text or ""
    if element.get("base64") == "true":
        try:
            return base64.b64decode(text).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return ""
    return text


def _urlencoded_body(raw_request: str) -> str | None:
    """Body of a raw HTTP request when it is form-urlencoded."""
    head, sep, body = raw_request.replace("\r\n", "\n").partition("\n\n")
    if not sep:
        return None
    for line in head.split("\n")[1:]:
        name, _, value = line.partition(":")
        if name.strip().lower() == "content-type" and _FORM_CONTENT_TYPE in value.lower():
            return body.strip()
    return None


def load_burp(path: str | Path) -> ImportedTraffic:
    """Read a Burp Suite "Save items" XML export.

    Only ``<url>`` and ``<method>`` are required per item; urlencoded POST
    bodies become forms on a best-effort basis.

    Raises:
        PassiveSourceError: When the file cannot be read or parsed.
    """
    file_path = Path(path)
    try:
        root = etree.fromstring(file_path.read_bytes(), parser=_XML_PARSER)
    except OSError as exc:
        raise PassiveSourceError(f"Cannot read Burp file {file_path}: {exc}") from exc
    except etree.XMLSyntaxError as exc:
        raise PassiveSourceError(f"Burp file {file_path} is not valid XML: {exc}") from exc

    traffic = ImportedTraffic(source="burp")
    for item in root.iter("item"):
        traffic.requests += 1
        url = (item.findtext("url") or "").strip()
        method = (item.findtext("method") or "GET").strip().upper()
        if not url:
            continue
        traffic.add_url(url)
        if method != "POST":
            continue
        request = item.find("request")
        body = _urlencoded_body(_burp_request_text(request)) if request is not None else None
        if body:
            form = _form_from_pairs(url, method, parse_qsl(body, keep_blank_values=True))
            if form is not None:
                traffic.forms.append(form)

    logger.info(f"Imported Burp capture {file_path}: {traffic.get_stats()}")
    return traffic


def load_har(path: str | Path) -> ImportedTraffic:
    """Read ``log.entries[].request`` from a HAR 1.2 file.

    Raises:
        PassiveSourceError: When the file cannot be read or is not HAR.
    """
    file_path = Path(path)
    try:
        data = orjson.loads(file_path.read_bytes())
    except OSError as exc:
        raise PassiveSourceError(f"Cannot read HAR file {file_path}: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise PassiveSourceError(f"HAR file {file_path} is not valid JSON: {exc}") from exc

    entries = data.get("log", {}).get("entries") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise PassiveSourceError(f"HAR file {file_path} has no log.entries")

    traffic = ImportedTraffic(source="har")
    for entry in entries:
        request = entry.get("request") if isinstance(entry, dict) else None
        if not isinstance(request, dict):
            continue
        traffic.requests += 1
        url = str(request.get("url") or "").strip()
        if not url:
            continue
        traffic.add_url(url)
        method = str(request.get("method") or "GET").upper()
        post_data = request.get("postData")
        if method != "POST" or not isinstance(post_data, dict):
            continue
        pairs = [
            (str(param.get("name") or ""), str(param.get("value") or ""))
            for param in post_data.get("params") or []
            if isinstance(param, dict)
        ]
        if not pairs and _FORM_CONTENT_TYPE in str(post_data.get("mimeType") or "").lower():
            pairs = parse_qsl(str(post_data.get("text") or ""), keep_blank_values=True)
        form = _form_from_pairs(url, method, pairs)
        if form is not None:
            traffic.forms.append(form)

    logger.info(f"Imported HAR capture {file_path}: {traffic.get_stats()}")
    return traffic
