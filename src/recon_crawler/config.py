"""Centralized configuration for recon-crawler using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
import random
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


ScopeModeName = Literal["strict", "sub", "rdn", "all"]


class Settings(BaseSettings):
    """Strictly typed crawl configuration.

    Values come from ``RECON_*`` environment variables or a ``.env`` file;
    CLI flags are applied on top as keyword overrides.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    target_url: str = Field(default="", description="Seed URL; its host defines the crawl target")
    task_id: str = Field(default="", description="Task id used for checkpoint file names (generated when empty)")

    # Frontier and scope
    max_depth: int = Field(default=3, ge=0, le=50, description="Maximum link depth from the seed")
    max_urls: int = Field(default=10000, ge=1, description="Global cap on URLs ever enqueued")
    max_frontier: int = Field(default=50000, ge=1, description="Bounded frontier capacity (back-pressure)")
    scope_mode: ScopeModeName = Field(default="sub", description="Host scope: strict, sub, rdn or all")
    blacklist_hosts: str = Field(default="", description="Comma-separated hosts (and their subdomains) to reject")
    blacklist_regex: str = Field(default="", description="Comma-separated regexes; matching URLs are rejected")
    include_paths: str = Field(default="", description="Comma-separated path globs; when set a path must match one")
    exclude_paths: str = Field(default="", description="Comma-separated path globs to reject")
    allow_query: bool = Field(default=True, description="Allow URLs carrying a query string")
    excluded_params: str = Field(default="", description="Comma-separated query parameters that put a URL out of scope")
    static_filter: bool = Field(default=True, description="Reject static assets (images, fonts, css, ...) before fetching")
    external_links_cap: int = Field(default=5000, ge=0, description="Maximum external links recorded in the summary")
    cross_domain_js_cap: int = Field(default=1000, ge=0, description="Maximum cross-origin scripts recorded")
    hidden_paths_cap: int = Field(default=1000, ge=0, description="Maximum responding common paths recorded")

    # Worker pool
    workers: int | None = Field(default=None, ge=1, le=500, description="Worker count (20, or 30 when max_depth > 2)")
    rate_per_second: float = Field(default=20.0, gt=0, description="Global request rate (token bucket refill)")
    burst: int | None = Field(default=None, ge=1, description="Token bucket burst (rate/10 when unset)")

    # Fetching
    request_timeout: float = Field(default=30.0, gt=0, description="Base per-request timeout in seconds")
    max_timeout: float = Field(default=120.0, gt=0, description="Ceiling for the adaptive request timeout")
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries for transient fetch failures")
    retry_base_delay: float = Field(default=1.0, ge=0, description="First retry delay in seconds")
    retry_multiplier: float = Field(default=2.0, ge=1.0, description="Exponential backoff multiplier")
    retry_max_delay: float = Field(default=60.0, ge=0, description="Maximum retry delay in seconds")
    user_agent: str = Field(default="", description="User-Agent header (random browser UA when empty)")
    cookie: str = Field(default="", description="Cookie header value, e.g. 'a=1; b=2'")
    cookie_file: str = Field(default="", description="Cookie file (JSON, Netscape cookies.txt or name=value lines)")
    memory_soft_cap_mb: int = Field(default=500, ge=16, description="Soft memory cap checked before reading bodies")
    max_body_bytes_html: int = Field(default=10 * 1024 * 1024, ge=1024, description="Body ceiling for HTML")
    max_body_bytes_js: int = Field(default=5 * 1024 * 1024, ge=1024, description="Body ceiling for JS and other text")
    deadline_seconds: float | None = Field(default=None, gt=0, description="Optional process-wide crawl deadline")

    # Dedup and learning
    dom_dedup_enabled: bool = Field(default=True, description="Flag near-duplicate pages by DOM embedding")
    dom_dimension: int = Field(default=256, ge=16, le=4096, description="DOM embedding dimension")
    dom_threshold: float = Field(default=0.85, ge=0.0, le=1.0, description="Cosine threshold for near-duplicates")
    pattern_cap_api: int = Field(default=5, ge=1, description="Per-pattern cap for API/AJAX URLs")
    pattern_cap_form: int = Field(default=5, ge=1, description="Per-pattern cap for form actions")
    pattern_cap_normal: int = Field(default=3, ge=1, description="Per-pattern cap for ordinary pages")
    pattern_cap_image: int = Field(default=2, ge=1, description="Per-pattern cap for images")
    pattern_cap_static: int = Field(default=1, ge=1, description="Per-pattern cap for other static assets")
    learning_rate: float = Field(default=0.15, gt=0.0, le=1.0, description="Adaptive learner step size")

    # Passive sources and fuzzing
    passive_robots: bool = Field(default=True, description="Seed from robots.txt")
    passive_sitemap: bool = Field(default=True, description="Seed from sitemap.xml and nested sitemaps")
    passive_wayback: bool = Field(default=False, description="Seed from the Wayback Machine CDX API")
    passive_commoncrawl: bool = Field(default=False, description="Seed from the CommonCrawl index")
    passive_common_paths: bool = Field(default=False, description="Request a dictionary of common application paths")
    virustotal_api_key: str = Field(default="", description="VirusTotal API key; enables that source when set")
    passive_limit: int = Field(default=1000, ge=1, description="Per-source URL limit for archive sources")
    burp_file: str = Field(default="", description="Burp Suite XML export to import")
    har_file: str = Field(default="", description="HAR 1.2 capture to import")
    fuzz_enabled: bool = Field(default=False, description="Synthesize ?param=value variants for parameter-less URLs")
    fuzz_validate: bool = Field(default=False, description="Probe fuzzed variants and stop on uniform responses")

    # Output
    out_dir: str = Field(default="./output", description="Directory for result sinks")
    checkpoint_dir: str = Field(default="./checkpoints", description="Directory for checkpoint files")
    checkpoint_interval: float = Field(default=30.0, gt=0, description="Seconds between periodic checkpoints")
    sink_queue_size: int = Field(default=1000, ge=1, description="Bounded queue size per sink")
    sink_flush_every: int = Field(default=50, ge=1, description="Flush file sinks every N entries")
    sink_flush_seconds: float = Field(default=5.0, gt=0, description="Flush file sinks at least this often")
    metrics_file: str = Field(default="", description="Write Prometheus metrics to this file when the crawl ends")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    USER_AGENTS: list[str] = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:143.0) Gecko/20100101 Firefox/143.0",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/18.6 Safari/605.1.15",
    ]

    @model_validator(mode="after")
    def _check_consistency(self) -> Settings:
        if self.target_url:
            parsed = urlparse(self.target_url)
            if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
                raise ValueError(f"target_url must be an absolute http(s) URL, got {self.target_url!r}")
        if self.max_timeout < self.request_timeout:
            raise ValueError("max_timeout must be greater than or equal to request_timeout")
        if self.cookie and self.cookie_file:
            raise ValueError("Use either cookie or cookie_file, not both")
        return self

    def effective_workers(self) -> int:
        """Worker count, defaulting higher for deep crawls."""
        if self.workers is not None:
            return self.workers
        return 30 if self.max_depth > 2 else 20

    def effective_burst(self) -> int:
        if self.burst is not None:
            return self.burst
        return max(1, int(self.rate_per_second / 10))

    def get_random_user_agent(self) -> str:
        """Get the configured User-Agent or a random browser one."""
        return self.user_agent or random.choice(self.USER_AGENTS)

    def get_blacklist_hosts(self) -> list[str]:
        return _split_csv(self.blacklist_hosts, lower=True)

    def get_blacklist_regex(self) -> list[str]:
        return _split_csv(self.blacklist_regex)

    def get_include_paths(self) -> list[str]:
        return _split_csv(self.include_paths)

    def get_exclude_paths(self) -> list[str]:
        return _split_csv(self.exclude_paths)

    def get_excluded_params(self) -> list[str]:
        return _split_csv(self.excluded_params, lower=True)

    def pattern_caps(self) -> dict[str, int]:
        """Per-pattern caps keyed by value type name."""
        return {
            "api": self.pattern_cap_api,
            "form": self.pattern_cap_form,
            "normal": self.pattern_cap_normal,
            "image": self.pattern_cap_image,
            "static": self.pattern_cap_static,
        }

    @property
    def out_path(self) -> Path:
        return Path(self.out_dir)

    @property
    def checkpoint_path(self) -> Path:
        return Path(self.checkpoint_dir)


def _split_csv(value: str, *, lower: bool = False) -> list[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


def load_settings(**overrides: Any) -> Settings:
    """Build settings from env/.env plus explicit overrides.

    ``None`` overrides are ignored so unset CLI flags fall through to the
    environment.

    Raises:
        ConfigError: When validation fails.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
