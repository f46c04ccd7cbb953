import pytest
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics.export import InMemoryMetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION
from opentelemetry.trace import SpanKind

from otel_demo.__main__ import main
from otel_demo.config.settings import Settings
from otel_demo.errors import StartupConfigError
from otel_demo.main import build_app, build_demo_service
from otel_demo.observability.bootstrap import (
    _default_log_processors,
    _default_metric_readers,
    _default_span_processors,
    configure_telemetry,
)
from otel_demo.observability.logs import LogEmitter
from otel_demo.observability.metrics import MetricRegistry
from otel_demo.observability.tracing import SpanEmitter


def test_missing_service_name_is_fatal() -> None:
    settings = Settings(service_name=None, otlp_enabled=False, prometheus_enabled=False)

    with pytest.raises(StartupConfigError):
        configure_telemetry(settings)


def test_blank_service_name_is_treated_as_missing() -> None:
    settings = Settings(service_name="   ")

    assert settings.service_name is None
    with pytest.raises(StartupConfigError):
        settings.require_service_name()


def test_settings_are_read_from_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OTEL_SERVICE_NAME", "bun-demo")
    monkeypatch.setenv("FRAMEWORK", "starlette")
    monkeypatch.setenv("DELAY_MS", "250")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "http://collector:4318/v1/traces")

    settings = Settings()

    assert settings.require_service_name() == "bun-demo"
    assert settings.framework == "starlette"
    assert settings.delay_ms == 250
    assert settings.port == 3000
    assert settings.otlp_traces_endpoint == "http://collector:4318/v1/traces"


def test_configure_telemetry_builds_resource_and_handles(settings: Settings) -> None:
    telemetry = configure_telemetry(
        settings,
        metric_readers=[InMemoryMetricReader()],
        span_processors=[],
        log_processors=[],
    )

    attributes = telemetry.resource.attributes
    assert attributes[SERVICE_NAME] == "otel-demo-test"
    assert attributes[SERVICE_VERSION] == "0.1.0"
    assert isinstance(telemetry.metrics, MetricRegistry)
    assert isinstance(telemetry.spans, SpanEmitter)
    assert isinstance(telemetry.logs, LogEmitter)

    telemetry.shutdown()
    telemetry.shutdown()


def test_default_exporters_follow_settings(settings: Settings) -> None:
    assert _default_metric_readers(settings) == []
    assert _default_span_processors(settings) == []
    assert _default_log_processors(settings) == []

    enabled = settings.model_copy(update={"otlp_enabled": True, "console_export": True})
    readers = _default_metric_readers(enabled)
    assert len(readers) == 2
    assert all(isinstance(reader, PeriodicExportingMetricReader) for reader in readers)
    assert isinstance(readers[0]._exporter, OTLPMetricExporter)
    assert len(_default_span_processors(enabled)) == 2
    assert len(_default_log_processors(enabled)) == 2


def test_build_app_refuses_to_start_without_service_name() -> None:
    with pytest.raises(StartupConfigError):
        build_app(Settings(service_name=None))


def test_main_exits_with_error_without_service_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("otel_demo.__main__.get_settings", lambda: Settings(service_name=None))

    assert main() == 1


def test_demo_service_instruments_its_outbound_client(settings: Settings) -> None:
    telemetry = configure_telemetry(settings, metric_readers=[], span_processors=[], log_processors=[])

    service = build_demo_service(settings, telemetry)

    assert service._on_client_created == telemetry.instrument_client
    telemetry.shutdown()


def test_request_span_kind_follows_auto_instrumentation(settings: Settings) -> None:
    telemetry = configure_telemetry(settings, metric_readers=[], span_processors=[], log_processors=[])

    assert telemetry.request_span_kind == SpanKind.SERVER
    telemetry.auto_instrument = True
    assert telemetry.request_span_kind == SpanKind.INTERNAL
    telemetry.shutdown()
