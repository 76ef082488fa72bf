"""Synthesize ``?param=value`` variants for parameter-less pages.

Variants go through the link harvester like any other URL, so the
structural pattern caps decide how many of them are actually crawled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from ..domain.models import PageResult
from ..errors import InvalidUrlError
from ..services.link_harvester import LinkHarvester
from ..utils.url_canonicalizer import CanonicalUrl, canonicalize
from .param_validator import SmartParamValidator


logger = logging.getLogger(__name__)

FUZZ_PARAMS = ("id", "page", "user", "file", "action")
FUZZ_VALUES = ("1", "2", "admin", "test")

# Content types worth probing with parameters
_FUZZABLE_TYPES = ("text/html", "application/xhtml", "application/json", "text/plain")


@dataclass(slots=True)
class FuzzOutcome:
    base_url: str
    generated: int = 0
    enqueued: list[str] = field(default_factory=list)
    effective_params: list[str] = field(default_factory=list)


class PatternFuzzer:
    """Fuzz each eligible page once.

    When a :class:`SmartParamValidator` is given, variants are probed
    before they are submitted and parameters the page ignores are dropped.
    """

    def __init__(
        self,
        harvester: LinkHarvester,
        *,
        params: tuple[str, ...] = FUZZ_PARAMS,
        values: tuple[str, ...] = FUZZ_VALUES,
        validator: SmartParamValidator | None = None,
    ) -> None:
        self.harvester = harvester
        self.params = params
        self.values = values
        self.validator = validator
        self.effective_params: dict[str, list[str]] = {}
        self._fuzzed: set[str] = set()
        self._generated = 0
        self._enqueued = 0

    def is_eligible(self, result: PageResult) -> bool:
        if not result.is_success or result.is_static or result.is_similar:
            return False
        content_type = result.content_type.split(";", 1)[0].strip().lower()
        if content_type and not content_type.startswith(_FUZZABLE_TYPES):
            return False
        try:
            url = canonicalize(result.url)
        except InvalidUrlError:
            return False
        return not url.has_params and url.serialize() not in self._fuzzed

    def variants(self, url: CanonicalUrl) -> list[str]:
        """Every ``param=value`` combination, grouped by parameter."""
        return [url.with_query([(param, value)]).serialize() for param in self.params for value in self.values]

    async def fuzz(self, result: PageResult) -> FuzzOutcome | None:
        """Submit variants of ``result``'s URL at the page's own depth."""
        if not self.is_eligible(result):
            return None
        base = canonicalize(result.url)
        base_key = base.serialize()
        self._fuzzed.add(base_key)

        candidates = self.variants(base)
        outcome = FuzzOutcome(base_url=base_key, generated=len(candidates))
        self._generated += len(candidates)

        if self.validator is not None:
            validation = await self.validator.validate(
                base, candidates, baseline_status=result.status, baseline_body=result.body
            )
            candidates = validation.valid_urls
            outcome.effective_params = validation.effective_params
            if validation.effective_params:
                self.effective_params[base_key] = validation.effective_params

        for variant in candidates:
            if self.harvester.exhausted:
                break
            if await self.harvester.submit(variant, depth=result.depth, discovered_by="fuzzer"):
                outcome.enqueued.append(variant)

        self._enqueued += len(outcome.enqueued)
        if outcome.enqueued:
            logger.debug(f"Fuzzer queued {len(outcome.enqueued)}/{outcome.generated} variants of {base_key}")
        return outcome

    def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "fuzzed_urls": len(self._fuzzed),
            "generated": self._generated,
            "enqueued": self._enqueued,
        }
        if self.validator is not None:
            stats["validator"] = self.validator.get_stats()
        return stats
