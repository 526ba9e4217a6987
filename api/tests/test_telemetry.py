import logging

from fastapi import FastAPI
from opentelemetry.sdk.trace import TracerProvider

from webmentions.core import telemetry
from webmentions.core.config import Settings


def test_parse_otlp_headers_skips_malformed_items() -> None:
    parsed = telemetry.parse_otlp_headers("authorization=Bearer abc, x-team = blog ,broken,=empty-key")

    assert parsed == {"authorization": "Bearer abc", "x-team": "blog"}
    assert telemetry.parse_otlp_headers(None) == {}


def test_log_records_carry_span_ids_when_correlation_enabled() -> None:
    original_factory = logging.getLogRecordFactory()
    try:
        telemetry.configure_logging(Settings(otel_log_correlation=True))
        tracer = TracerProvider().get_tracer("test")
        with tracer.start_as_current_span("work") as span:
            record = logging.getLogRecordFactory()("test", logging.INFO, __file__, 1, "inside", (), None)
        outside = logging.getLogRecordFactory()("test", logging.INFO, __file__, 1, "outside", (), None)
    finally:
        logging.setLogRecordFactory(original_factory)

    assert record.trace_id == format(span.get_span_context().trace_id, "032x")
    assert record.span_id == format(span.get_span_context().span_id, "016x")
    assert outside.trace_id == "0" * 32


def test_correlation_disabled_leaves_record_factory_alone() -> None:
    original_factory = logging.getLogRecordFactory()
    try:
        telemetry.configure_logging(Settings(otel_log_correlation=False))
        assert logging.getLogRecordFactory() is original_factory
    finally:
        logging.setLogRecordFactory(original_factory)


def test_disabled_telemetry_installs_no_provider() -> None:
    runtime = telemetry.setup_api_telemetry(FastAPI(), Settings(otel_enabled=False, otel_log_correlation=False))

    assert runtime.enabled is False
    assert runtime.provider is None
