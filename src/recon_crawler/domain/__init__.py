"""Domain model: crawl values and the crawl state machine."""

from recon_crawler.domain.crawl_state import CrawlState, CrawlStatus
from recon_crawler.domain.models import (
    CrawlSummary,
    ExtractedArtifacts,
    Finding,
    Form,
    FormField,
    PageResult,
    ProgressEvent,
    ProgressKind,
)


__all__ = [
    "CrawlState",
    "CrawlStatus",
    "CrawlSummary",
    "ExtractedArtifacts",
    "Finding",
    "Form",
    "FormField",
    "PageResult",
    "ProgressEvent",
    "ProgressKind",
]
