"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from tinysearch_bridge.observability.context import (
    bind_identifier,
    get_trace_context,
    set_trace_context,
    trace_context,
)
from tinysearch_bridge.observability.logging import JsonFormatter, configure_logging
from tinysearch_bridge.observability.metrics import (
    BINDING_READY,
    LOAD_LATENCY,
    LOAD_OUTCOME,
    QUERY_COUNT,
    MetricBridge,
    get_metrics,
)
from tinysearch_bridge.observability.tracing import (
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
)


__all__ = [
    "BINDING_READY",
    "LOAD_LATENCY",
    "LOAD_OUTCOME",
    "QUERY_COUNT",
    "JsonFormatter",
    "MetricBridge",
    "bind_identifier",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
]
