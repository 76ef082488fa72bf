"""Error taxonomy for the recon crawler.

Per-URL errors (invalid URLs, fetch failures, extractor failures) are
recorded and counted but never abort a crawl. Only configuration errors
and unrecoverable state corruption propagate to the CLI.
"""

from __future__ import annotations

from enum import Enum


RETRYABLE_ERROR_PATTERNS: tuple[str, ...] = (
    "timeout",
    "connection refused",
    "connection reset",
    "temporary failure",
    "network is unreachable",
    "no route to host",
    "i/o timeout",
    "tls handshake timeout",
    "eof",
)


class ReconCrawlerError(Exception):
    """Base error for the recon crawler."""


class ConfigError(ReconCrawlerError):
    """Raised when settings or CLI arguments are invalid."""


class InvalidUrlError(ReconCrawlerError):
    """Raised when a raw URL cannot be canonicalized."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class ExtractorError(ReconCrawlerError):
    """Raised by an extractor that failed on one artifact."""


class PassiveSourceError(ReconCrawlerError):
    """Raised when a passive source (archive API, traffic capture) cannot be read."""


class InvalidStateTransitionError(ReconCrawlerError):
    """Raised when the crawl state machine is driven through an illegal edge."""


class CheckpointError(ReconCrawlerError):
    """Base error for checkpoint persistence."""


class CheckpointWriteError(CheckpointError):
    """Raised when a checkpoint could not be written."""


class CheckpointNotFoundError(CheckpointError):
    """Raised when a checkpoint for a task id does not exist."""


class FetchErrorKind(str, Enum):
    """Failure classes surfaced by fetchers."""

    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    DNS = "dns"
    TLS = "tls"
    HTTP = "http"
    BODY_TOO_LARGE = "body_too_large"
    CANCELLED = "cancelled"

    @property
    def is_transient(self) -> bool:
        return self in {FetchErrorKind.TIMEOUT, FetchErrorKind.CONNECTION_RESET, FetchErrorKind.TLS}


class FetchError(ReconCrawlerError):
    """A failed fetch.

    ``retryable`` is decided from the error kind first and from the message
    second, so wrapped transport errors with familiar wording still retry.
    """

    def __init__(self, kind: FetchErrorKind, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status

    @property
    def retryable(self) -> bool:
        if self.kind in {FetchErrorKind.CANCELLED, FetchErrorKind.BODY_TOO_LARGE, FetchErrorKind.HTTP}:
            return False
        if self.kind.is_transient:
            return True
        return is_retryable_message(self.message)

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value!r}, message={self.message!r}, status={self.status!r})"


def is_retryable_message(message: str) -> bool:
    """Check an error message against the known transient-failure wording."""
    lowered = message.lower()
    return any(pattern in lowered for pattern in RETRYABLE_ERROR_PATTERNS)
