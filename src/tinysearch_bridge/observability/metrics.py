"""Bootstrap metrics, recorded in Prometheus and mirrored to OpenTelemetry instruments."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from opentelemetry import metrics as otel_metrics
from prometheus_client import Counter, Gauge, Histogram, generate_latest


_PROM_TYPES: dict[str, type[Counter | Gauge | Histogram]] = {
    "counter": Counter,
    "gauge": Gauge,
    "histogram": Histogram,
}


class _BoundMetric:
    __slots__ = ("_bridge", "_labels")

    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.prom.labels(**self._labels).inc(amount)
        self._bridge.instrument().add(amount, self._labels)

    def observe(self, value: float) -> None:
        self._bridge.prom.labels(**self._labels).observe(value)
        self._bridge.instrument().record(value, self._labels)

    def set(self, value: float) -> None:
        self._bridge.prom.labels(**self._labels).set(value)
        # OTel has no settable gauge here; emit the change on an up-down counter
        key = tuple(sorted(self._labels.items()))
        delta = value - self._bridge.last_values.get(key, 0.0)
        self._bridge.last_values[key] = value
        if delta:
            self._bridge.instrument().add(delta, self._labels)


class MetricBridge:
    """A Prometheus metric plus the OTel instrument created for it on first use."""

    def __init__(self, kind: str, name: str, description: str, labelnames: Sequence[str], **prom_options: Any) -> None:
        if kind not in _PROM_TYPES:
            raise ValueError(f"Unknown metric kind: {kind}")
        self.kind = kind
        self.name = name
        self.description = description
        self.prom = _PROM_TYPES[kind](name, description, list(labelnames), **prom_options)
        self.last_values: dict[tuple[tuple[str, str], ...], float] = {}
        self._instrument: Any = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def instrument(self) -> Any:
        if self._instrument is None:
            meter = otel_metrics.get_meter(__name__)
            create = {
                "counter": meter.create_counter,
                "gauge": meter.create_up_down_counter,
                "histogram": meter.create_histogram,
            }[self.kind]
            self._instrument = create(self.name, description=self.description)
        return self._instrument


LOAD_LATENCY = MetricBridge(
    "histogram",
    "tinysearch_load_latency_seconds",
    "Time from load start until the module is ready or failed",
    ["base_path"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

LOAD_OUTCOME = MetricBridge(
    "counter",
    "tinysearch_loads",
    "Completed load attempts by outcome",
    ["base_path", "outcome"],
)

BINDING_READY = MetricBridge(
    "gauge",
    "tinysearch_binding_ready",
    "Whether the published query function is ready (1) or not (0)",
    ["identifier"],
)

QUERY_COUNT = MetricBridge(
    "counter",
    "tinysearch_queries",
    "Calls made through the published query function",
    ["identifier", "outcome"],
)


def get_metrics() -> bytes:
    """Render the default registry in the Prometheus text format."""
    return generate_latest()
