"""URL canonicalization.

Reduces a raw URL to the single string form used as the equality key by
the scope engine, the dedup stack and the frontier. The steps run in a
fixed order: parse, lowercase scheme, IDN to punycode, lowercase host,
drop default port, clean the path, normalize percent-encoding, drop
tracking parameters, decode and re-encode query values, sort the query,
drop the fragment.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from urllib.parse import parse_qsl, quote, urlsplit

from ..errors import InvalidUrlError


DEFAULT_TRACKING_PARAMS: frozenset[str] = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_content",
        "utm_term",
        "gclid",
        "fbclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
        "_ga",
        "_gid",
        "_gac",
        "fbadid",
        "ref",
        "referrer",
        "source",
        "campaign_id",
        "ad_id",
        "adgroup_id",
    }
)

DEFAULT_PORTS = {"http": 80, "https": 443}

_UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")
_PERCENT_RE = re.compile(r"%([0-9A-Fa-f]{2})")
# Characters left literal in a path; "%" stays so existing escapes survive
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
# Characters left literal in query keys and values; "+", "&", "=" and "#" are always escaped
_QUERY_SAFE = "-._~:/@!$'()*,;"


@dataclass(slots=True, frozen=True)
class CanonicalUrl:
    """Immutable canonical URL; build it with :func:`canonicalize`."""

    scheme: str
    host: str
    port: int | None
    path: str
    query: tuple[tuple[str, str], ...] = ()

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}" if self.port is not None else host

    @property
    def query_string(self) -> str:
        return "&".join(f"{quote(key, safe=_QUERY_SAFE)}={quote(value, safe=_QUERY_SAFE)}" for key, value in self.query)

    @property
    def query_keys(self) -> list[str]:
        """Distinct parameter names, sorted."""
        return sorted({key for key, _ in self.query})

    @property
    def param_count(self) -> int:
        return len(self.query_keys)

    @property
    def has_params(self) -> bool:
        return bool(self.query)

    @property
    def extension(self) -> str:
        """Lowercase extension of the last path segment including the dot, or ``""``."""
        last = self.path.rsplit("/", 1)[-1]
        if "." not in last:
            return ""
        return "." + last.rsplit(".", 1)[-1].lower()

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.netloc}"

    def serialize(self) -> str:
        query = self.query_string
        return f"{self.origin}{self.path}?{query}" if query else f"{self.origin}{self.path}"

    def with_query(self, pairs: list[tuple[str, str]]) -> CanonicalUrl:
        """Copy with a replaced query, kept in canonical sorted order."""
        return CanonicalUrl(self.scheme, self.host, self.port, self.path, tuple(sorted(pairs)))

    def __str__(self) -> str:
        return self.serialize()


def canonicalize(raw: str, *, tracking_params: frozenset[str] = DEFAULT_TRACKING_PARAMS) -> CanonicalUrl:
    """Canonicalize ``raw``.

    Args:
        raw: Absolute URL as found in a page, sitemap or capture
        tracking_params: Lowercase parameter names to drop

    Returns:
        The canonical URL

    Raises:
        InvalidUrlError: Scheme missing or not http(s), host empty, or port invalid.
    """
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidUrlError(raw, "empty")

    try:
        parts = urlsplit(candidate)
    except ValueError as exc:
        raise InvalidUrlError(raw, str(exc)) from exc

    scheme = parts.scheme.lower()
    if not scheme:
        raise InvalidUrlError(raw, "missing scheme")
    if scheme not in DEFAULT_PORTS:
        raise InvalidUrlError(raw, f"unsupported scheme {scheme!r}")

    host = _normalize_host(raw, parts.hostname or "")

    try:
        port = parts.port
    except ValueError as exc:
        raise InvalidUrlError(raw, "invalid port") from exc
    if port == DEFAULT_PORTS[scheme]:
        port = None

    path = _normalize_percent(quote(clean_path(parts.path), safe=_PATH_SAFE))
    query = _canonical_query(parts.query, tracking_params)
    return CanonicalUrl(scheme=scheme, host=host, port=port, path=path, query=query)


def try_canonicalize(raw: str, **kwargs) -> CanonicalUrl | None:
    """Like :func:`canonicalize` but returns ``None`` for invalid input."""
    try:
        return canonicalize(raw, **kwargs)
    except InvalidUrlError:
        return None


def clean_path(path: str) -> str:
    """Resolve ``.``/``..`` segments and duplicate slashes, keeping a trailing slash."""
    if not path:
        return "/"
    trailing = path.endswith(("/", "/.", "/..")) or path in (".", "..")
    stack: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if stack:
                stack.pop()
            continue
        stack.append(segment)
    cleaned = "/" + "/".join(stack)
    if trailing and stack:
        cleaned += "/"
    return cleaned


def _normalize_host(raw: str, hostname: str) -> str:
    host = hostname.strip().rstrip(".")
    if not host:
        raise InvalidUrlError(raw, "empty host")
    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as exc:
            raise InvalidUrlError(raw, "host is not valid IDN") from exc
    return host.lower()


def _normalize_percent(value: str) -> str:
    def _fix(match: re.Match[str]) -> str:
        char = chr(int(match.group(1), 16))
        if char in _UNRESERVED:
            return char
        return "%" + match.group(1).upper()

    return _PERCENT_RE.sub(_fix, value)


def _canonical_query(query: str, tracking_params: frozenset[str]) -> tuple[tuple[str, str], ...]:
    if not query:
        return ()
    pairs = parse_qsl(query, keep_blank_values=True, errors="replace")
    kept = [(key, value) for key, value in pairs if key and key.lower() not in tracking_params]
    return tuple(sorted(kept))
