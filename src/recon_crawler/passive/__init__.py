"""Passive URL sources: robots.txt, sitemaps, web archives and captured traffic."""

from .archives import ArchiveSource, CommonCrawlSource, VirusTotalSource, WaybackSource
from .ingestor import IngestReport, PassiveIngestor, SourceOutcome
from .robots_sitemap import RobotsInfo, RobotsSitemapSource, parse_robots, parse_sitemap
from .traffic_import import ImportedTraffic, is_api_url, load_burp, load_har


__all__ = [
    "ArchiveSource",
    "CommonCrawlSource",
    "ImportedTraffic",
    "IngestReport",
    "PassiveIngestor",
    "RobotsInfo",
    "RobotsSitemapSource",
    "SourceOutcome",
    "VirusTotalSource",
    "WaybackSource",
    "is_api_url",
    "load_burp",
    "load_har",
    "parse_robots",
    "parse_sitemap",
]
