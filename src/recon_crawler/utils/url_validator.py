"""Reject-before-canonicalize gate for strings mined out of pages.

Regex-based extraction from HTML, JS and CSS produces a lot of strings that
look like paths but are code, markup, colours or template fragments. This
validator is the single place that throws them away.
"""

from __future__ import annotations

from collections import Counter
import re
from urllib.parse import urlsplit


_JS_KEYWORDS = frozenset(
    {
        "get", "set", "post", "put", "delete", "patch",
        "function", "return", "var", "let", "const",
        "true", "false", "null", "undefined",
        "typeof", "instanceof", "arguments",
        "this", "super", "new", "class",
    }
)  # fmt: skip

_CSS_PROPERTIES = (
    "margin", "padding", "border", "color",
    "width", "height", "display", "position",
    "rgba", "rgb", "hsl", "flex", "grid",
    "font", "background", "text", "align",
    "auto", "none", "center", "left", "right",
)  # fmt: skip

_TEMPLATE_MARKERS = ("{{", "}}", "[[", "]]", "<%", "%>", "<?", "?>")
_JS_OPERATORS = ("===", "!==", "&&", "||")
_MIME_TOP_LEVEL = frozenset({"application", "text", "image", "video", "audio", "font", "multipart"})
_MIME_SUBTYPES = frozenset(
    {
        "json", "xml", "html", "plain", "javascript", "css", "pdf", "octet-stream",
        "x-www-form-urlencoded", "jpeg", "png", "gif", "svg", "mpeg", "mp4",
    }
)  # fmt: skip

_HTML_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_JS_CODE_RE = re.compile(
    r"(?i)(\bfunction\s*\(|=>\s*{|\bvar\s+\w+\s*=|\blet\s+\w+\s*=|\bconst\s+\w+\s*=|===|!==|\)\s*{"
    r"|/\*|\*/|console\.log|window\.|document\.|return\s+\w+)"
)
_ENCODED_RE = re.compile(r"%[0-9A-Fa-f]{2}")
_PURE_SYMBOL_RE = re.compile(r"^[#?&=\-_./:\\]*$")
_BAD_SCHEME_RE = re.compile(r"^(javascript|data|blob|about|vbscript|file):")
_DIGITS_RE = re.compile(r"^\d+$")
_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{3,8}$")


class SmartUrlValidator:
    """Decide whether a mined string is worth canonicalizing.

    ``check`` returns ``(ok, reason)``; rejection reasons are tallied in
    :attr:`stats`.
    """

    def __init__(self, max_length: int = 500, encoding_threshold: float = 0.4) -> None:
        self.max_length = max_length
        self.encoding_threshold = encoding_threshold
        self.total_checked = 0
        self.total_passed = 0
        self.rejections: Counter[str] = Counter()

    def check(self, raw: str) -> tuple[bool, str]:
        self.total_checked += 1
        ok, reason = self._check(raw)
        if ok:
            self.total_passed += 1
        else:
            self.rejections[reason] += 1
        return ok, reason

    def is_valid(self, raw: str) -> bool:
        return self.check(raw)[0]

    def filter(self, urls: list[str]) -> list[str]:
        return [url for url in urls if self.is_valid(url)]

    def _check(self, raw: str) -> tuple[bool, str]:
        trimmed = (raw or "").strip()
        if not trimmed:
            return False, "empty"

        lowered = trimmed.lower()
        if lowered in _JS_KEYWORDS:
            return False, "js_keyword"
        if any(lowered == prop or lowered.startswith(prop + "-") for prop in _CSS_PROPERTIES):
            return False, "css_property"
        if len(trimmed) == 1:
            return False, "single_char"
        if _DIGITS_RE.match(trimmed):
            return False, "pure_digits"
        if _HEX_COLOR_RE.match(trimmed):
            return False, "hex_color"
        if len(raw) > self.max_length:
            return False, "too_long"
        if _PURE_SYMBOL_RE.match(trimmed):
            return False, "pure_symbols"
        if _BAD_SCHEME_RE.match(lowered):
            return False, "bad_scheme"

        try:
            parts = urlsplit(trimmed)
        except ValueError:
            return False, "unparseable"

        if not parts.path and not parts.query and not parts.fragment:
            return (True, "") if parts.netloc else (False, "no_path")

        if _JS_CODE_RE.search(trimmed):
            return False, "js_code"
        if any(op in trimmed for op in _JS_OPERATORS):
            return False, "js_operator"
        if _HTML_TAG_RE.search(trimmed):
            return False, "html_tag"

        encoded = len(_ENCODED_RE.findall(trimmed))
        if encoded * 3 / len(trimmed) > self.encoding_threshold:
            return False, "over_encoded"

        if "//" in trimmed and not lowered.startswith(("http://", "https://")):
            after_scheme = trimmed.split("://", 1)[-1]
            if "//" in after_scheme:
                return False, "comment_marker"

        if any(marker in trimmed for marker in _TEMPLATE_MARKERS):
            return False, "template_marker"

        if parts.path:
            if not any(ch.isprintable() and ch != "/" for ch in parts.path):
                return False, "empty_path"
            segments = parts.path.strip("/").split("/")
            if len(segments) > 1 and segments[0] in _MIME_TOP_LEVEL and segments[1] in _MIME_SUBTYPES:
                return False, "mime_type"

        return True, ""

    def get_stats(self) -> dict[str, int]:
        stats = {"total_checked": self.total_checked, "total_passed": self.total_passed}
        stats.update({f"rejected_{reason}": count for reason, count in sorted(self.rejections.items())})
        return stats
