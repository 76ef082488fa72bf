"""Smart parameter validation for fuzzed URLs.

A parameter the server ignores returns the same page whatever its value.
Variants are fetched one parameter at a time and compared against the
unparameterized baseline; after ``max_similar`` consecutive look-alikes
the rest of that parameter's variants are abandoned.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import hashlib
import logging
import re
from typing import Any

from ..errors import FetchError, InvalidUrlError
from ..fetching.fetcher import Fetcher, FetchOptions
from ..runtime.rate_limit import TokenBucket
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize


logger = logging.getLogger(__name__)

ERROR_MARKERS = ("error", "exception", "warning", "not found", "404", "invalid", "forbidden", "unauthorized", "denied")
_TITLE_RE = re.compile(rb"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


@dataclass(slots=True, frozen=True)
class ResponseSignature:
    status: int
    length: int
    body_hash: str
    title: str = ""
    error_markers: tuple[str, ...] = ()

    @property
    def has_content(self) -> bool:
        return self.length > 0

    @classmethod
    def from_body(cls, status: int, body: bytes) -> ResponseSignature:
        match = _TITLE_RE.search(body)
        title = match.group(1).decode("utf-8", errors="replace").strip() if match else ""
        lowered = body.decode("utf-8", errors="replace").lower()
        return cls(
            status=status,
            length=len(body),
            body_hash=hashlib.md5(body, usedforsecurity=False).hexdigest(),
            title=title,
            error_markers=tuple(marker for marker in ERROR_MARKERS if marker in lowered),
        )


def signature_similarity(a: ResponseSignature, b: ResponseSignature, *, min_length_diff: int = 50) -> float:
    """Weighted similarity in [0, 1]: status 0.3, length 0.3, body hash 0.3, title 0.1.

    Lengths closer than ``min_length_diff`` bytes count as equal; two
    untitled pages count as having the same title.
    """
    score = 0.0
    if a.status == b.status:
        score += 0.3
    diff = abs(a.length - b.length)
    if diff < min_length_diff:
        score += 0.3
    else:
        longest = max(a.length, b.length)
        score += 0.3 * (1.0 - diff / longest)
    if a.body_hash == b.body_hash:
        score += 0.3
    if a.title == b.title:
        score += 0.1
    return score


@dataclass(slots=True)
class ParamValidation:
    param: str
    tested: int = 0
    similar: int = 0
    valid_urls: list[str] = field(default_factory=list)
    stopped_early: bool = False
    reason: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.valid_urls)


@dataclass(slots=True)
class ValidationResult:
    valid_urls: list[str] = field(default_factory=list)
    params: dict[str, ParamValidation] = field(default_factory=dict)
    baseline_failed: bool = False

    @property
    def effective_params(self) -> list[str]:
        return sorted(name for name, validation in self.params.items() if validation.is_valid)


class SmartParamValidator:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        bucket: TokenBucket | None = None,
        similarity_threshold: float = 0.95,
        max_similar: int = 3,
        min_length_diff: int = 50,
        timeout: float = 10.0,
    ) -> None:
        self.fetcher = fetcher
        self.bucket = bucket
        self.similarity_threshold = similarity_threshold
        self.max_similar = max_similar
        self.min_length_diff = min_length_diff
        self.timeout = timeout
        self.total_candidates = 0
        self.requests = 0
        self.valid_params = 0
        self.invalid_params = 0
        self.stopped_early = 0
        self.saved_requests = 0

    async def validate(
        self,
        base: CanonicalUrl,
        candidates: Sequence[str],
        *,
        baseline_status: int | None = None,
        baseline_body: bytes | None = None,
    ) -> ValidationResult:
        """Keep the candidates whose responses differ from the baseline.

        The baseline is fetched unless the caller already holds the page
        body. If it cannot be fetched every candidate is kept.
        """
        self.total_candidates += len(candidates)
        if baseline_status is not None and baseline_body is not None:
            baseline = ResponseSignature.from_body(baseline_status, baseline_body)
        else:
            baseline = await self._signature(base)
        if baseline is None:
            logger.debug(f"Baseline fetch failed for {base}; keeping {len(candidates)} variants unvalidated")
            return ValidationResult(valid_urls=list(candidates), baseline_failed=True)

        result = ValidationResult()
        for param, urls in group_by_param(candidates).items():
            validation = await self._validate_param(param, urls, baseline)
            result.params[param] = validation
            result.valid_urls.extend(validation.valid_urls)
            if validation.is_valid:
                self.valid_params += 1
            else:
                self.invalid_params += 1
                logger.debug(f"Parameter {param!r} on {base} looks ignored: {validation.reason}")
        return result

    async def _validate_param(self, param: str, urls: list[str], baseline: ResponseSignature) -> ParamValidation:
        validation = ParamValidation(param=param)
        consecutive = 0
        for index, url in enumerate(urls):
            try:
                target = canonicalize(url)
            except InvalidUrlError:
                continue
            signature = await self._signature(target)
            if signature is None:
                continue
            validation.tested += 1
            similarity = signature_similarity(baseline, signature, min_length_diff=self.min_length_diff)
            if similarity < self.similarity_threshold:
                validation.valid_urls.append(url)
                consecutive = 0
                continue
            consecutive += 1
            validation.similar += 1
            if consecutive >= self.max_similar:
                remaining = len(urls) - index - 1
                validation.reason = f"{consecutive} consecutive responses matched the baseline"
                if remaining > 0:
                    validation.stopped_early = True
                    self.stopped_early += 1
                    self.saved_requests += remaining
                break

        if not validation.is_valid and not validation.reason:
            validation.reason = (
                f"all {validation.tested} values matched the baseline" if validation.tested else "every probe failed"
            )
        return validation

    async def _signature(self, url: CanonicalUrl) -> ResponseSignature | None:
        if self.bucket is not None:
            await self.bucket.acquire()
        self.requests += 1
        try:
            response = await self.fetcher.fetch(url, FetchOptions(timeout=self.timeout))
        except FetchError as exc:
            logger.debug(f"Validation probe failed for {url}: {exc}")
            return None
        return ResponseSignature.from_body(response.status, response.body)

    def get_stats(self) -> dict[str, Any]:
        return {
            "candidates": self.total_candidates,
            "requests": self.requests,
            "valid_params": self.valid_params,
            "invalid_params": self.invalid_params,
            "stopped_early": self.stopped_early,
            "saved_requests": self.saved_requests,
        }


def group_by_param(urls: Sequence[str]) -> dict[str, list[str]]:
    """Group URLs by each query parameter name they carry, in first-seen order."""
    groups: dict[str, list[str]] = {}
    for url in urls:
        try:
            canonical = canonicalize(url)
        except InvalidUrlError:
            continue
        for name in canonical.query_keys:
            groups.setdefault(name, []).append(url)
    return groups
