"""Prometheus crawl metrics mirrored into OpenTelemetry instruments."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Gauge, Histogram, generate_latest, write_to_textfile
from prometheus_client.registry import REGISTRY


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "recon-crawler",
    resource_attributes: dict[str, str] | None = None,
) -> MeterProvider:
    """Initialize the OpenTelemetry meter provider once per process."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = MeterProvider(resource=Resource.create(attributes))
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


def _label_key(labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(labels.items()))


class _BoundMetric:
    def __init__(self, wrapper: MetricBridge, labels: dict[str, str]) -> None:
        self._wrapper = wrapper
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._wrapper.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._wrapper.set(self._labels, value)


class MetricBridge:
    """Record into a Prometheus metric and the matching OTel instrument together."""

    def __init__(
        self,
        prom_metric: Counter | Histogram | Gauge,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: str,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None
        self._last_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        if self._otel_instrument is not None:
            return self._otel_instrument
        meter = _get_meter()
        if self._otel_kind == "counter":
            self._otel_instrument = meter.create_counter(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "histogram":
            self._otel_instrument = meter.create_histogram(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "gauge":
            self._otel_instrument = meter.create_up_down_counter(self._otel_name, description=self._otel_description)
        else:
            raise ValueError(f"Unknown metric kind: {self._otel_kind}")
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._ensure_otel_instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._ensure_otel_instrument().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).set(value)
        key = _label_key(labels)
        delta = value - self._last_values.get(key, 0.0)
        if delta:
            self._ensure_otel_instrument().add(delta, labels)
        self._last_values[key] = value


_PAGES_FETCHED_PROM = Counter(
    "recon_pages_fetched_total",
    "Pages fetched, by status class",
    ["status_class"],
)

_FETCH_ERRORS_PROM = Counter(
    "recon_fetch_errors_total",
    "Final fetch failures, by error kind",
    ["kind"],
)

_FETCH_RETRIES_PROM = Counter(
    "recon_fetch_retries_total",
    "Retries scheduled after a transient fetch failure",
    ["kind"],
)

_DEDUP_DECISIONS_PROM = Counter(
    "recon_dedup_decisions_total",
    "Dedup stack decisions, by kind",
    ["decision"],
)

_FRONTIER_SIZE_PROM = Gauge(
    "recon_frontier_size",
    "Entries waiting in the frontier",
    ["task"],
)

_FETCH_LATENCY_PROM = Histogram(
    "recon_fetch_latency_seconds",
    "Fetch latency in seconds",
    ["kind"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

_WEIGHT_ADJUSTMENTS_PROM = Counter(
    "recon_weight_adjustments_total",
    "Scheduler weight adjustments made by the learner",
    ["weight"],
)

_CHECKPOINT_WRITES_PROM = Counter(
    "recon_checkpoint_writes_total",
    "Checkpoint write attempts, by outcome",
    ["outcome"],
)

_PASSIVE_URLS_PROM = Counter(
    "recon_passive_urls_total",
    "URLs produced by passive sources, by source",
    ["source"],
)

PAGES_FETCHED = MetricBridge(
    _PAGES_FETCHED_PROM,
    otel_name="recon_pages_fetched_total",
    otel_description="Pages fetched, by status class",
    otel_kind="counter",
)

FETCH_ERRORS = MetricBridge(
    _FETCH_ERRORS_PROM,
    otel_name="recon_fetch_errors_total",
    otel_description="Final fetch failures, by error kind",
    otel_kind="counter",
)

FETCH_RETRIES = MetricBridge(
    _FETCH_RETRIES_PROM,
    otel_name="recon_fetch_retries_total",
    otel_description="Retries scheduled after a transient fetch failure",
    otel_kind="counter",
)

DEDUP_DECISIONS = MetricBridge(
    _DEDUP_DECISIONS_PROM,
    otel_name="recon_dedup_decisions_total",
    otel_description="Dedup stack decisions, by kind",
    otel_kind="counter",
)

FRONTIER_SIZE = MetricBridge(
    _FRONTIER_SIZE_PROM,
    otel_name="recon_frontier_size",
    otel_description="Entries waiting in the frontier",
    otel_kind="gauge",
)

FETCH_LATENCY = MetricBridge(
    _FETCH_LATENCY_PROM,
    otel_name="recon_fetch_latency_seconds",
    otel_description="Fetch latency in seconds",
    otel_kind="histogram",
)

WEIGHT_ADJUSTMENTS = MetricBridge(
    _WEIGHT_ADJUSTMENTS_PROM,
    otel_name="recon_weight_adjustments_total",
    otel_description="Scheduler weight adjustments made by the learner",
    otel_kind="counter",
)

CHECKPOINT_WRITES = MetricBridge(
    _CHECKPOINT_WRITES_PROM,
    otel_name="recon_checkpoint_writes_total",
    otel_description="Checkpoint write attempts, by outcome",
    otel_kind="counter",
)

PASSIVE_URLS = MetricBridge(
    _PASSIVE_URLS_PROM,
    otel_name="recon_passive_urls_total",
    otel_description="URLs produced by passive sources, by source",
    otel_kind="counter",
)


def status_class(status: int) -> str:
    """Bucket an HTTP status into ``2xx``/``3xx``/... labels."""
    if status <= 0:
        return "none"
    return f"{status // 100}xx"


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def write_metrics_file(path: str | Path) -> None:
    """Write the current registry in node-exporter textfile format."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(target), REGISTRY)
