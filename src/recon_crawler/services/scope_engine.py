"""Scope decisions for canonical URLs.

Rules run in a fixed order and the first rejection wins:

1. blacklist (hosts and regexes)
2. static-asset filter (extension, Content-Type, magic bytes)
3. host mode (``strict``, ``sub``, ``rdn``, ``all``); JavaScript files skip this step
4. path include/exclude globs, query rules, path depth

``all`` mode skips the static filter too, so with an empty blacklist it accepts
every well-formed URL unless path or query rules were configured.

JavaScript on a CDN often carries endpoint strings for the target host, so
``.js``/``.mjs``/``.jsx`` URLs bypass the host mode but never the blacklist.
"""

from __future__ import annotations

from enum import Enum
from fnmatch import fnmatchcase
from functools import lru_cache
import logging
import re
from typing import NamedTuple

import tldextract

from ..utils.static_detector import kind_for_content_type, kind_for_extension, kind_for_magic
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize


logger = logging.getLogger(__name__)

JS_EXTENSIONS = frozenset({".js", ".mjs", ".jsx"})

# Bundled public suffix snapshot only; a crawl never downloads the list
_tld_extract = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


class ScopeMode(str, Enum):
    STRICT = "strict"
    SUB = "sub"
    RDN = "rdn"
    ALL = "all"


class ScopeDecision(NamedTuple):
    allowed: bool
    reason: str


@lru_cache(maxsize=4096)
def registrable_domain(host: str) -> str:
    """Registrable domain of ``host`` (``a.b.example.co.uk`` -> ``example.co.uk``).

    IP addresses and single-label hosts are returned unchanged.
    """
    host = host.lower().strip(".")
    parts = _tld_extract(host)
    if parts.domain and parts.suffix:
        return f"{parts.domain}.{parts.suffix}"
    return host


def is_same_or_subdomain(host: str, parent: str) -> bool:
    return host == parent or host.endswith("." + parent)


class ScopeEngine:
    """Decide whether a canonical URL belongs to the crawl."""

    def __init__(
        self,
        target: CanonicalUrl | str,
        *,
        mode: ScopeMode | str = ScopeMode.SUB,
        blacklist_hosts: list[str] | None = None,
        blacklist_regex: list[str] | None = None,
        include_paths: list[str] | None = None,
        exclude_paths: list[str] | None = None,
        allow_query: bool = True,
        excluded_params: list[str] | None = None,
        max_path_depth: int = 0,
        static_filter: bool = True,
    ) -> None:
        self.target = target if isinstance(target, CanonicalUrl) else canonicalize(target)
        self.mode = ScopeMode(mode)
        self.target_host = self.target.host
        self.target_root = self.target_host.removeprefix("www.")
        self.target_rdn = registrable_domain(self.target_host)
        self.blacklist_hosts = [host.lower().strip(".") for host in blacklist_hosts or [] if host.strip()]
        self.blacklist_regex = [re.compile(pattern) for pattern in blacklist_regex or []]
        self.include_paths = list(include_paths or [])
        self.exclude_paths = list(exclude_paths or [])
        self.allow_query = allow_query
        self.excluded_params = {param.lower() for param in excluded_params or []}
        self.max_path_depth = max_path_depth
        self.static_filter = static_filter
        self.checked = 0
        self.rejected = 0

    def in_scope(
        self,
        url: CanonicalUrl | str,
        *,
        content_type: str = "",
        body: bytes | None = None,
    ) -> ScopeDecision:
        """Apply every rule to ``url``; ``content_type``/``body`` enable the post-fetch static checks."""
        self.checked += 1
        canonical = url if isinstance(url, CanonicalUrl) else canonicalize(url)
        decision = self._evaluate(canonical, content_type, body)
        if not decision.allowed:
            self.rejected += 1
            logger.debug(f"Out of scope ({decision.reason}): {canonical}")
        return decision

    def host_in_mode(self, host: str) -> bool:
        """Host-mode rule alone, without blacklist or path rules."""
        host = host.lower()
        if self.mode == ScopeMode.ALL:
            return True
        if self.mode == ScopeMode.STRICT:
            return host == self.target_host
        if self.mode == ScopeMode.SUB:
            return is_same_or_subdomain(host, self.target_root)
        return registrable_domain(host) == self.target_rdn

    def is_internal(self, host: str) -> bool:
        """Target host or one of its subdomains; drives the scheduler's internal bonus."""
        return is_same_or_subdomain(host.lower(), self.target_root)

    def is_related_host(self, host: str) -> bool:
        """Same registrable domain as the target (subdomain collection)."""
        return registrable_domain(host) == self.target_rdn

    def is_blacklisted(self, url: CanonicalUrl) -> bool:
        return self._blacklist_reason(url) is not None

    def _evaluate(self, url: CanonicalUrl, content_type: str, body: bytes | None) -> ScopeDecision:
        reason = self._blacklist_reason(url)
        if reason:
            return ScopeDecision(False, reason)

        if self.static_filter and self.mode != ScopeMode.ALL:
            kind = kind_for_extension(url.path)
            if kind is None and content_type:
                kind = kind_for_content_type(content_type)
            if kind is None and body:
                kind = kind_for_magic(body)
            if kind:
                return ScopeDecision(False, f"static:{kind}")

        if url.extension not in JS_EXTENSIONS and not self.host_in_mode(url.host):
            return ScopeDecision(False, f"host_out_of_scope:{self.mode.value}")

        if self.include_paths and not any(fnmatchcase(url.path, glob) for glob in self.include_paths):
            return ScopeDecision(False, "path_not_included")
        if any(fnmatchcase(url.path, glob) for glob in self.exclude_paths):
            return ScopeDecision(False, "path_excluded")

        if url.query and not self.allow_query:
            return ScopeDecision(False, "query_not_allowed")
        if self.excluded_params and any(key.lower() in self.excluded_params for key in url.query_keys):
            return ScopeDecision(False, "excluded_param")

        if self.max_path_depth and len([seg for seg in url.path.split("/") if seg]) > self.max_path_depth:
            return ScopeDecision(False, "path_too_deep")

        return ScopeDecision(True, "in_scope")

    def _blacklist_reason(self, url: CanonicalUrl) -> str | None:
        if any(is_same_or_subdomain(url.host, blocked) for blocked in self.blacklist_hosts):
            return "blacklisted_host"
        serialized = url.serialize()
        if any(pattern.search(serialized) for pattern in self.blacklist_regex):
            return "blacklisted_pattern"
        return None

    def get_stats(self) -> dict[str, int | str]:
        return {"mode": self.mode.value, "checked": self.checked, "rejected": self.rejected}
