"""Unit tests for the shared logging and tracing setup."""

import json
import logging

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from shared.logging import bind_context, configure_logging, get_logger, unbind_context
from shared.tracing import otel_config, trace_function


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def spans(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(otel_config, "get_tracer", provider.get_tracer)
    return exporter


class TestConfigureLogging:

    def test_json_records_carry_service_fields(self, capsys, restore_logging):
        configure_logging(log_level="INFO", json_logs=True, service_name="testfachdienst", environment="test")

        bind_context(correlation_id="corr-1")
        get_logger("unit").info("erezept_created", erezept_id=7)
        unbind_context("correlation_id")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "erezept_created"
        assert record["erezept_id"] == 7
        assert record["service"] == "testfachdienst"
        assert record["environment"] == "test"
        assert record["correlation_id"] == "corr-1"
        assert record["level"] == "info"

    def test_stdlib_records_use_the_same_renderer(self, capsys, restore_logging):
        configure_logging(log_level="INFO", json_logs=True, service_name="testfachdienst")

        logging.getLogger("uvicorn.error").info("Started server process")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "Started server process"
        assert record["logger"] == "uvicorn.error"
        assert "environment" not in record

    def test_level_filters_records(self, capsys, restore_logging):
        configure_logging(log_level="WARNING", json_logs=True)

        get_logger("unit").info("hidden")

        assert capsys.readouterr().out == ""


class TestTraceFunction:

    def test_sync_function_gets_a_span(self, spans):
        @trace_function("unit.add")
        def add(a, b):
            return a + b

        assert add(1, 2) == 3

        [span] = spans.get_finished_spans()
        assert span.name == "unit.add"
        assert span.attributes["code.namespace"] == __name__

    @pytest.mark.asyncio
    async def test_async_failure_marks_span_as_error(self, spans):
        @trace_function()
        async def explode():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await explode()

        [span] = spans.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "RuntimeError: boom"
        assert [event.name for event in span.events] == ["exception"]


class TestSpanExporter:

    def test_http_endpoint_gets_traces_path(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(otel_config, "HttpSpanExporter", lambda endpoint: captured.setdefault("endpoint", endpoint))

        otel_config._span_exporter("http", "http://collector:4318/")

        assert captured["endpoint"] == "http://collector:4318/v1/traces"

    def test_unknown_protocol_is_rejected(self):
        with pytest.raises(ValueError):
            otel_config._span_exporter("zipkin", "http://collector:9411")
