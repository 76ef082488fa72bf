"""Fetching, extraction and the per-page driver."""

from recon_crawler.fetching.driver import DriveOutcome, FetchDriver
from recon_crawler.fetching.extractors import (
    CssExtractor,
    Extractor,
    ExtractorKind,
    ExtractorRegistry,
    HtmlExtractor,
    JsExtractor,
)
from recon_crawler.fetching.fetcher import Fetcher, FetchOptions, FetchResponse, HttpxFetcher


__all__ = [
    "CssExtractor",
    "DriveOutcome",
    "Extractor",
    "ExtractorKind",
    "ExtractorRegistry",
    "FetchDriver",
    "FetchOptions",
    "FetchResponse",
    "Fetcher",
    "HtmlExtractor",
    "HttpxFetcher",
    "JsExtractor",
]
