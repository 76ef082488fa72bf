"""Static resource detection by extension, Content-Type and magic bytes."""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
import re
from urllib.parse import parse_qsl, urlsplit


_EXTENSION_KINDS: dict[str, str] = {}
for _kind, _exts in (
    ("image", (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tiff", ".tif", ".psd",
               ".raw", ".heif", ".heic")),
    ("video", (".mp4", ".avi", ".mov", ".wmv", ".flv", ".mkv", ".webm", ".m4v")),
    ("audio", (".mp3", ".wav", ".ogg", ".m4a", ".flac", ".aac", ".wma")),
    ("font", (".woff", ".woff2", ".ttf", ".eot", ".otf")),
    ("css", (".css", ".scss", ".sass", ".less")),
    ("document", (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx")),
    ("archive", (".zip", ".rar", ".7z", ".tar", ".gz", ".bz2")),
    ("sourcemap", (".map",)),
):  # fmt: skip
    for _ext in _exts:
        _EXTENSION_KINDS[_ext] = _kind

_MAGIC_PREFIXES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image"),
    (b"\x89PNG\r\n\x1a\n", "image"),
    (b"GIF87a", "image"),
    (b"GIF89a", "image"),
    (b"BM", "image"),
    (b"\x00\x00\x01\x00", "image"),
    (b"FLV", "video"),
    (b"%PDF", "document"),
    (b"PK\x03\x04", "archive"),
)

_DYNAMIC_IMAGE_PATTERNS = (
    re.compile(r"(?i)/(show|display|get|view)(image|img|pic|photo|thumb)"),
    re.compile(r"(?i)/image\.(php|jsp|asp|aspx)"),
    re.compile(r"(?i)/(thumb|thumbnail|resize)\.(php|jsp|asp)"),
)
_IMAGE_PARAMS = frozenset({"file", "path", "img", "image"})
_IMAGE_VALUE_SUFFIXES = (".jpg", ".jpeg", ".png", ".gif", ".webp")


@dataclass(slots=True, frozen=True)
class StaticVerdict:
    is_static: bool
    kind: str = ""
    reason: str = ""


NOT_STATIC = StaticVerdict(False)


def kind_for_extension(url: str) -> str | None:
    """Static kind for the URL's path extension, or ``None``."""
    ext = posixpath.splitext(urlsplit(url).path)[1].lower()
    return _EXTENSION_KINDS.get(ext) if ext else None


def kind_for_content_type(content_type: str) -> str | None:
    media = content_type.split(";", 1)[0].strip().lower()
    if not media:
        return None
    for prefix in ("image/", "video/", "audio/", "font/"):
        if media.startswith(prefix):
            return prefix[:-1]
    if media == "text/css":
        return "css"
    if media == "application/pdf":
        return "document"
    if "zip" in media or "compressed" in media:
        return "archive"
    return None


def kind_for_magic(body: bytes | None) -> str | None:
    if not body or len(body) < 8:
        return None
    if body.startswith(b"RIFF") and len(body) >= 12 and body[8:12] == b"WEBP":
        return "image"
    if body[4:8] == b"ftyp":
        return "video"
    for magic, kind in _MAGIC_PREFIXES:
        if body.startswith(magic):
            return kind
    return None


def is_dynamic_image_url(url: str) -> bool:
    """Script URLs that usually serve images, e.g. ``showimage.php?file=a.jpg``."""
    if any(pattern.search(url) for pattern in _DYNAMIC_IMAGE_PATTERNS):
        return True
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key.lower() not in _IMAGE_PARAMS:
            continue
        lowered = value.lower()
        if lowered.endswith(_IMAGE_VALUE_SUFFIXES) or "/pictures/" in lowered or "/images/" in lowered:
            return True
    return False


class SmartStaticDetector:
    """Classify a response as static in cheapest-first order.

    Extension is checked first and needs no response at all. Content-Type
    and magic bytes come next. A dynamic-image URL is only called static
    once its body confirms it, since the same script may serve HTML errors.
    """

    def detect(self, url: str, content_type: str = "", body: bytes | None = None) -> StaticVerdict:
        kind = kind_for_extension(url)
        if kind:
            return StaticVerdict(True, kind, "extension")

        kind = kind_for_content_type(content_type) if content_type else None
        if kind:
            return StaticVerdict(True, kind, "content_type")

        kind = kind_for_magic(body)
        if kind:
            reason = "dynamic_image" if is_dynamic_image_url(url) else "magic_bytes"
            return StaticVerdict(True, kind, reason)

        return NOT_STATIC

    def should_crawl(self, url: str, content_type: str = "", body: bytes | None = None) -> bool:
        return not self.detect(url, content_type, body).is_static
