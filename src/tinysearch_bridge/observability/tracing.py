"""OpenTelemetry spans around the load sequence, optionally exported over OTLP."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import SpanKind, Status, StatusCode

from tinysearch_bridge.errors import LoadError
from tinysearch_bridge.observability.context import get_trace_context, update_span_id


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span, Tracer

    from tinysearch_bridge.config import ObservabilityCollectorConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "tinysearch-bridge"
ATTRIBUTE_PREFIX = "tinysearch."

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(resource_attributes: dict[str, str] | None = None) -> TracerProvider:
    """Install an SDK tracer provider for this process and return it."""
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME, **(resource_attributes or {})}))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = provider.get_tracer(__name__)
    return provider


def get_tracer() -> Tracer:
    if _tracer_holder["tracer"] is None:
        _tracer_holder["tracer"] = trace.get_tracer(__name__)
    return _tracer_holder["tracer"]  # type: ignore[return-value]


def _build_span_exporter(config: ObservabilityCollectorConfig) -> SpanExporter:
    options: dict[str, Any] = {
        "endpoint": config.collector_endpoint,
        "headers": config.headers,
        "timeout": config.timeout_seconds,
    }
    if config.otlp_protocol == "grpc":
        return GrpcOTLPSpanExporter(insecure=config.grpc_insecure, **options)
    return HttpOTLPSpanExporter(**options)


def configure_trace_exporter(
    config: ObservabilityCollectorConfig | None,
    provider: TracerProvider | None = None,
) -> bool:
    """Ship load spans to the configured collector.

    Returns False, after logging why, when export is disabled or the exporter
    cannot be built; the bootstrap itself never depends on the collector.
    """
    if config is None or not config.enabled:
        return False

    if provider is None:
        current = trace.get_tracer_provider()
        provider = current if isinstance(current, TracerProvider) else init_tracing(config.resource_attributes)

    try:
        exporter = _build_span_exporter(config)
    except Exception as exc:
        logger.error("Could not create OTLP %s span exporter: %s", config.otlp_protocol, exc, exc_info=True)
        return False

    provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("Exporting spans over OTLP/%s to %s", config.otlp_protocol, config.collector_endpoint)
    return True


def _span_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    return {f"{ATTRIBUTE_PREFIX}{key}": value for key, value in attributes.items() if value is not None}


@contextmanager
def create_span(name: str, *, kind: SpanKind = SpanKind.INTERNAL, **attributes: Any) -> Iterator[Span]:
    """Open a span as the current span.

    Keyword attributes are recorded under the ``tinysearch.`` prefix and
    ``None`` values are skipped. An exception escaping the body marks the span
    as errored; a ``LoadError`` also records its kind.
    """
    with get_tracer().start_as_current_span(
        name,
        kind=kind,
        attributes=_span_attributes(attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        parent_span_id = get_trace_context()["span_id"]
        update_span_id(format(span.get_span_context().span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            if isinstance(exc, LoadError):
                span.set_attribute(f"{ATTRIBUTE_PREFIX}error_kind", exc.kind)
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        finally:
            update_span_id(parent_span_id)
