"""Observability helpers: structured logging, Prometheus/OTel metrics and tracing."""

from recon_crawler.observability.context import bind_task, get_trace_context, trace_context
from recon_crawler.observability.logging import JsonFormatter, configure_logging
from recon_crawler.observability.metrics import (
    CHECKPOINT_WRITES,
    DEDUP_DECISIONS,
    FETCH_ERRORS,
    FETCH_LATENCY,
    FETCH_RETRIES,
    FRONTIER_SIZE,
    PAGES_FETCHED,
    PASSIVE_URLS,
    WEIGHT_ADJUSTMENTS,
    get_metrics,
    init_metrics,
    track_latency,
    write_metrics_file,
)
from recon_crawler.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "CHECKPOINT_WRITES",
    "DEDUP_DECISIONS",
    "FETCH_ERRORS",
    "FETCH_LATENCY",
    "FETCH_RETRIES",
    "FRONTIER_SIZE",
    "PAGES_FETCHED",
    "PASSIVE_URLS",
    "WEIGHT_ADJUSTMENTS",
    "JsonFormatter",
    "bind_task",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "trace_context",
    "track_latency",
    "write_metrics_file",
]
