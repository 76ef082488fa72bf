"""URL type classification.

Two views of the same decision: :class:`UrlKind` is the descriptive shape of
a URL (RESTful, multi-parameter, ...), :class:`ValueType` is the coarse class
that selects the per-pattern cap in the dedup stack.
"""

from __future__ import annotations

from enum import Enum
import re
from urllib.parse import parse_qsl, urlsplit


class UrlKind(str, Enum):
    STATIC_ASSET = "static_asset"
    AJAX = "ajax"
    FILE_PARAM = "file_param"
    RESTFUL = "restful"
    MULTI_PARAM = "multi_param"
    NORMAL = "normal"


class ValueType(str, Enum):
    API = "api"
    FORM = "form"
    NORMAL = "normal"
    IMAGE = "image"
    STATIC = "static"


_STATIC_ASSET_RE = re.compile(
    r"\.(jpg|jpeg|png|gif|bmp|svg|webp|ico|css|js|woff|woff2|ttf|eot|mp4|mp3|avi|pdf|zip|rar|swf)$"
)
_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp", ".ico"})
_AJAX_RE = re.compile(r"(?i)/(ajax|api|v\d+|graphql|rest)/|\.json|\.xml|/rpc/")
_AJAX_KEYWORDS = ("/ajax/", "/api/", "/rest/", "/graphql", "/v1/", "/v2/", "/v3/", ".json", ".xml", ".api")
_FILE_PARAM_RE = re.compile(r"(?i)[?&](file|path|document|doc|image|img|attachment|download)=")
_FILE_PARAM_KEYS = ("file", "path", "document", "doc", "image", "img", "attachment", "download", "filename", "filepath")
_RESTFUL_RE = re.compile(r"/[a-zA-Z_-]+/[0-9a-zA-Z_-]+/[a-zA-Z_-]+/?")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def classify_url(url: str) -> UrlKind:
    """Classify by the first matching rule: static, AJAX/API, file param, RESTful, multi-param."""
    lowered = url.lower()
    parts = urlsplit(url)
    path_lower = parts.path.lower()

    if _STATIC_ASSET_RE.search(path_lower):
        return UrlKind.STATIC_ASSET
    if _AJAX_RE.search(url) or any(keyword in lowered for keyword in _AJAX_KEYWORDS):
        return UrlKind.AJAX
    if _is_file_param(url, parts.query):
        return UrlKind.FILE_PARAM
    if _is_restful(parts.path):
        return UrlKind.RESTFUL
    if len({key for key, _ in parse_qsl(parts.query, keep_blank_values=True)}) >= 2:
        return UrlKind.MULTI_PARAM
    return UrlKind.NORMAL


def value_type_for(url: str, *, from_form: bool = False) -> ValueType:
    """Cap class for a URL; form actions always count as ``form``."""
    if from_form:
        return ValueType.FORM
    kind = classify_url(url)
    if kind == UrlKind.STATIC_ASSET:
        path = urlsplit(url).path.lower()
        ext = "." + path.rsplit(".", 1)[-1] if "." in path.rsplit("/", 1)[-1] else ""
        return ValueType.IMAGE if ext in _IMAGE_EXTENSIONS else ValueType.STATIC
    if kind == UrlKind.AJAX:
        return ValueType.API
    return ValueType.NORMAL


def _is_file_param(url: str, query: str) -> bool:
    if _FILE_PARAM_RE.search(url):
        return True
    for key, _ in parse_qsl(query, keep_blank_values=True):
        key_lower = key.lower()
        if any(file_key in key_lower for file_key in _FILE_PARAM_KEYS):
            return True
    return False


def _is_restful(path: str) -> bool:
    if _RESTFUL_RE.search(path):
        return True
    segments = path.strip("/").split("/")
    if len(segments) >= 2:
        for name, ident in zip(segments, segments[1:]):
            if _is_resource_name(name) and _is_resource_id(ident):
                return True
    return any("-" in segment and _contains_number_or_uuid(segment) for segment in segments)


def _is_resource_name(segment: str) -> bool:
    if len(segment) < 2 or not segment[0].isascii() or not segment[0].isalpha():
        return False
    alpha = sum(1 for ch in segment if ch.isascii() and ch.isalpha())
    return alpha / len(segment) > 0.6


def _is_resource_id(segment: str) -> bool:
    if not segment:
        return False
    return segment.isdigit() or bool(_UUID_RE.match(segment)) or _contains_number_or_uuid(segment)


def _contains_number_or_uuid(segment: str) -> bool:
    if any(ch.isdigit() for ch in segment):
        return True
    if "-" in segment and len(segment) > 8:
        return any(part and (part.isdigit() or _HEX_RE.match(part)) for part in segment.split("-"))
    return False
