"""Unit tests for logging, tracing and metrics."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import sys
from unittest.mock import Mock

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from tests.fixtures.site import write_site
from tinysearch_bridge.adapters.artifact_source import FilesystemArtifactSource
from tinysearch_bridge.config import ObservabilityCollectorConfig
from tinysearch_bridge.domain.model import ModuleState
from tinysearch_bridge.errors import InstantiationFailure, NotReadyError, ResourceLoadFailure
from tinysearch_bridge.observability import (
    JsonFormatter,
    bind_identifier,
    configure_logging,
    configure_trace_exporter,
    create_span,
    get_metrics,
    get_trace_context,
    set_trace_context,
    tracing as tracing_module,
)
from tinysearch_bridge.observability.context import update_span_id
from tinysearch_bridge.service_layer.global_bridge import GlobalBridge
from tinysearch_bridge.service_layer.module_loader import ModuleLoader


def _record(msg: str = "message", level: int = logging.INFO, name: str = "tinysearch_bridge.loader") -> logging.LogRecord:
    return logging.LogRecord(name=name, level=level, pathname="x.py", lineno=1, msg=msg, args=(), exc_info=None)


@pytest.fixture
def span_exporter(monkeypatch) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))
    return exporter


@pytest.mark.unit
class TestJsonFormatter:
    def test_format_includes_trace_context(self) -> None:
        data = json.loads(JsonFormatter().format(_record("loaded")))

        assert data["message"] == "loaded"
        assert data["level"] == "INFO"
        assert data["component"] == "loader"
        assert len(data["trace_id"]) == 32
        assert len(data["span_id"]) == 16

    def test_format_includes_identifier_from_context(self) -> None:
        set_trace_context("aa" * 16, "bb" * 8)
        bind_identifier("tinysearch")

        data = json.loads(JsonFormatter().format(_record()))

        assert data["identifier"] == "tinysearch"
        assert data["trace_id"] == "aa" * 16

    def test_format_includes_extra_fields_and_redacts(self) -> None:
        record = _record("x" * 5000)
        record.error_kind = "resource_load_failure"
        record.token = "abc"
        record.location = Path("/srv/site/tinysearch_engine_bg.wasm")

        data = json.loads(JsonFormatter().format(record))

        assert data["message"].endswith("...")
        assert data["error_kind"] == "resource_load_failure"
        assert data["token"] == "[REDACTED]"
        assert data["location"] == "/srv/site/tinysearch_engine_bg.wasm"
        assert "pathname" not in data

    def test_format_includes_exception(self) -> None:
        try:
            raise ResourceLoadFailure("HTTP 404")
        except ResourceLoadFailure:
            record = logging.LogRecord("t", logging.ERROR, "x.py", 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ResourceLoadFailure: HTTP 404" in data["exception"]

    def test_json_default_handles_domain_values(self) -> None:
        formatter = JsonFormatter()

        assert formatter._json_default({3, 1, 2}) == [1, 2, 3]
        assert isinstance(formatter._json_default({1, "a"}), list)
        assert formatter._json_default(b"\x00asm\x01\x00\x00\x00" + b"x" * 100) == "<108 bytes 0061736d01000000>"
        assert formatter._json_default(ResourceLoadFailure("gone", location="/x"))["kind"] == "resource_load_failure"

    def test_error_extra_is_serialized(self) -> None:
        record = _record("failed")
        record.error = InstantiationFailure("bad binary", location="/tinysearch_engine_bg.wasm")
        record.state = ModuleState.FAILED

        data = json.loads(JsonFormatter().format(record))

        assert data["error"]["kind"] == "instantiation_failure"
        assert data["error"]["location"] == "/tinysearch_engine_bg.wasm"
        assert data["state"] == "failed"


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_json_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("debug", json_output=True, logger_levels={"tinysearch_bridge.cli": "error"})

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
            assert logging.getLogger("tinysearch_bridge.cli").level == logging.ERROR
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            logging.getLogger("tinysearch_bridge.cli").setLevel(logging.NOTSET)

    def test_plain_text_formatter(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("info", json_output=False)

            assert not isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


@pytest.mark.unit
class TestTraceContext:
    def test_update_span_id_preserves_trace_and_identifier(self) -> None:
        set_trace_context("aa" * 16, "bb" * 8, identifier="tinysearch")
        update_span_id("cc" * 8)

        ctx = get_trace_context()

        assert ctx == {"trace_id": "aa" * 16, "span_id": "cc" * 8, "identifier": "tinysearch"}

    def test_span_id_is_restored_when_span_closes(self, span_exporter: InMemorySpanExporter) -> None:
        set_trace_context("aa" * 16, "bb" * 8, identifier="tinysearch")

        with create_span("tinysearch.outer"):
            outer_id = get_trace_context()["span_id"]
            assert outer_id != "bb" * 8
            with pytest.raises(ResourceLoadFailure), create_span("tinysearch.inner"):
                raise ResourceLoadFailure("missing")
            assert get_trace_context()["span_id"] == outer_id

        assert get_trace_context() == {"trace_id": "aa" * 16, "span_id": "bb" * 8, "identifier": "tinysearch"}


@pytest.mark.unit
class TestTracing:
    def test_create_span_records_errors(self, span_exporter: InMemorySpanExporter) -> None:
        with pytest.raises(ValueError), create_span("tinysearch.test", base_path="/", location=None):
            raise ValueError("boom")

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "tinysearch.test"
        assert span.attributes["tinysearch.base_path"] == "/"
        assert "tinysearch.location" not in span.attributes
        assert span.status.status_code is StatusCode.ERROR
        assert span.events[0].name == "exception"

    @pytest.mark.asyncio
    async def test_loader_emits_load_and_instantiate_spans(
        self, span_exporter: InMemorySpanExporter, site_root: Path
    ) -> None:
        await ModuleLoader(FilesystemArtifactSource(site_root)).load("/memo_pub/")

        spans = {span.name: span for span in span_exporter.get_finished_spans()}
        assert set(spans) == {"tinysearch.load", "tinysearch.instantiate"}
        assert spans["tinysearch.load"].attributes["tinysearch.base_path"] == "/memo_pub/"
        assert spans["tinysearch.load"].attributes["tinysearch.state"] == "ready"
        assert spans["tinysearch.instantiate"].parent.span_id == spans["tinysearch.load"].context.span_id

    def test_load_error_kind_recorded_on_span(self, span_exporter: InMemorySpanExporter) -> None:
        with pytest.raises(ResourceLoadFailure), create_span("tinysearch.fetch"):
            raise ResourceLoadFailure("HTTP 404", status_code=404)

        (span,) = span_exporter.get_finished_spans()
        assert span.attributes["tinysearch.error_kind"] == "resource_load_failure"

    def test_configure_trace_exporter_disabled(self) -> None:
        assert configure_trace_exporter(ObservabilityCollectorConfig()) is False
        assert configure_trace_exporter(None) is False

    def test_configure_trace_exporter_adds_span_processor(self, monkeypatch) -> None:
        provider = TracerProvider()
        provider.add_span_processor = Mock()  # type: ignore[method-assign]
        monkeypatch.setattr(tracing_module, "HttpOTLPSpanExporter", Mock(return_value=object()))
        monkeypatch.setattr(tracing_module, "BatchSpanProcessor", Mock(return_value="processor"))
        config = ObservabilityCollectorConfig(enabled=True, otlp_protocol="http")

        assert configure_trace_exporter(config, provider=provider) is True

        provider.add_span_processor.assert_called_once_with("processor")

    def test_configure_trace_exporter_reports_exporter_errors(self, monkeypatch) -> None:
        provider = TracerProvider()
        monkeypatch.setattr(tracing_module, "GrpcOTLPSpanExporter", Mock(side_effect=RuntimeError("no grpc")))
        config = ObservabilityCollectorConfig(enabled=True, otlp_protocol="grpc")

        assert configure_trace_exporter(config, provider=provider) is False


@pytest.mark.unit
class TestMetrics:
    @pytest.mark.asyncio
    async def test_load_outcome_and_latency_recorded(self, tmp_path: Path) -> None:
        site = tmp_path / "metrics_site"
        write_site(site, "/metrics_only/")
        labels = {"base_path": "/metrics_only/", "outcome": "ready"}
        before = REGISTRY.get_sample_value("tinysearch_loads_total", labels) or 0.0

        await ModuleLoader(FilesystemArtifactSource(site)).load("/metrics_only/")

        assert REGISTRY.get_sample_value("tinysearch_loads_total", labels) == before + 1
        assert REGISTRY.get_sample_value("tinysearch_load_latency_seconds_count", {"base_path": "/metrics_only/"}) >= 1

    def test_binding_gauge_and_query_counter(self) -> None:
        bridge = GlobalBridge({})
        bridge.bind("metricsearch", lambda query: [query])

        assert REGISTRY.get_sample_value("tinysearch_binding_ready", {"identifier": "metricsearch"}) == 0
        with pytest.raises(NotReadyError):
            bridge.proxy("early")  # type: ignore[misc]

        bridge.mark_ready()
        bridge.proxy("hello")  # type: ignore[misc]

        assert REGISTRY.get_sample_value("tinysearch_binding_ready", {"identifier": "metricsearch"}) == 1
        assert REGISTRY.get_sample_value("tinysearch_queries_total", {"identifier": "metricsearch", "outcome": "ok"}) == 1
        assert (
            REGISTRY.get_sample_value("tinysearch_queries_total", {"identifier": "metricsearch", "outcome": "rejected"})
            == 1
        )

    def test_get_metrics_exposes_prometheus_text(self) -> None:
        assert b"tinysearch_loads_total" in get_metrics()
