"""One-time OpenTelemetry SDK initialisation.

Builds the meter, tracer and logger providers for the service resource, wires
the configured exporters and hands out the registry and emitters consumed by
the request handlers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

import httpx
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LogRecordProcessor
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    ConsoleLogExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import SpanKind

from otel_demo.config.settings import Settings
from otel_demo.observability.logs import LogEmitter
from otel_demo.observability.metrics import MetricRegistry
from otel_demo.observability.tracing import SpanEmitter

logger = logging.getLogger(__name__)


@dataclass
class Telemetry:
    """Handles on the initialised SDK, shared by every request."""

    service_name: str
    resource: Resource
    meter_provider: MeterProvider
    tracer_provider: TracerProvider
    logger_provider: LoggerProvider
    metrics: MetricRegistry
    spans: SpanEmitter
    logs: LogEmitter
    auto_instrument: bool = False
    _shut_down: bool = field(default=False, init=False, repr=False)

    def install_global(self) -> None:
        """Register the providers as the process-wide OpenTelemetry defaults."""

        metrics.set_meter_provider(self.meter_provider)
        trace.set_tracer_provider(self.tracer_provider)
        set_logger_provider(self.logger_provider)

    @property
    def request_span_kind(self) -> SpanKind:
        """Kind of the per-request span; the framework instrumentation owns SERVER when active."""

        return SpanKind.INTERNAL if self.auto_instrument else SpanKind.SERVER

    def instrument_app(self, app: Any, framework: str) -> None:
        """Apply framework auto-instrumentation to ``app`` when enabled."""

        if not self.auto_instrument:
            return
        if framework == "fastapi":
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

            FastAPIInstrumentor.instrument_app(
                app,
                tracer_provider=self.tracer_provider,
                meter_provider=self.meter_provider,
            )
        else:
            from opentelemetry.instrumentation.starlette import StarletteInstrumentor

            StarletteInstrumentor.instrument_app(
                app,
                tracer_provider=self.tracer_provider,
                meter_provider=self.meter_provider,
            )
        logger.info("OpenTelemetry %s instrumentation enabled", framework)

    def instrument_client(self, client: httpx.AsyncClient) -> None:
        """Apply httpx auto-instrumentation to an outbound client when enabled."""

        if not self.auto_instrument:
            return
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor.instrument_client(client, tracer_provider=self.tracer_provider)

    def shutdown(self) -> None:
        """Flush and stop every provider. Safe to call more than once."""

        if self._shut_down:
            return
        self._shut_down = True
        for name, provider in (
            ("tracer", self.tracer_provider),
            ("meter", self.meter_provider),
            ("logger", self.logger_provider),
        ):
            try:
                provider.shutdown()
            except Exception:  # pragma: no cover - exporter failures during shutdown
                logger.exception("Failed to shut down the %s provider", name)
        logger.info("Telemetry for %s shut down", self.service_name)


def _default_metric_readers(settings: Settings) -> List[MetricReader]:
    readers: List[MetricReader] = []
    interval = settings.metric_export_interval_ms
    if settings.otlp_enabled:
        readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=settings.otlp_metrics_endpoint),
                export_interval_millis=interval,
            )
        )
    if settings.console_export:
        readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=interval))
    if settings.prometheus_enabled:
        from opentelemetry.exporter.prometheus import PrometheusMetricReader

        readers.append(PrometheusMetricReader())
    return readers


def _default_span_processors(settings: Settings) -> List[SpanProcessor]:
    processors: List[SpanProcessor] = []
    if settings.otlp_enabled:
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_traces_endpoint)))
    if settings.console_export:
        processors.append(BatchSpanProcessor(ConsoleSpanExporter()))
    return processors


def _default_log_processors(settings: Settings) -> List[LogRecordProcessor]:
    processors: List[LogRecordProcessor] = []
    if settings.otlp_enabled:
        processors.append(BatchLogRecordProcessor(OTLPLogExporter(endpoint=settings.otlp_logs_endpoint)))
    if settings.console_export:
        processors.append(SimpleLogRecordProcessor(ConsoleLogExporter()))
    return processors


def configure_telemetry(
    settings: Settings,
    *,
    metric_readers: Optional[Sequence[MetricReader]] = None,
    span_processors: Optional[Iterable[SpanProcessor]] = None,
    log_processors: Optional[Iterable[LogRecordProcessor]] = None,
) -> Telemetry:
    """Initialise the SDK once for the configured service.

    Explicit readers and processors replace the ones derived from
    ``settings``. Raises :class:`~otel_demo.errors.StartupConfigError` when no
    service name is configured.
    """

    service_name = settings.require_service_name()
    resource = Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: settings.service_version,
        }
    )

    readers = list(metric_readers) if metric_readers is not None else _default_metric_readers(settings)
    meter_provider = MeterProvider(resource=resource, metric_readers=readers)

    tracer_provider = TracerProvider(resource=resource)
    for processor in span_processors if span_processors is not None else _default_span_processors(settings):
        tracer_provider.add_span_processor(processor)

    logger_provider = LoggerProvider(resource=resource)
    for processor in log_processors if log_processors is not None else _default_log_processors(settings):
        logger_provider.add_log_record_processor(processor)

    telemetry = Telemetry(
        service_name=service_name,
        resource=resource,
        meter_provider=meter_provider,
        tracer_provider=tracer_provider,
        logger_provider=logger_provider,
        metrics=MetricRegistry(meter_provider.get_meter(service_name, settings.service_version)),
        spans=SpanEmitter(tracer_provider.get_tracer(service_name, settings.service_version)),
        logs=LogEmitter(logger_provider.get_logger(service_name, settings.service_version)),
        auto_instrument=settings.auto_instrument,
    )
    logger.info(
        "Telemetry initialised for %s (otlp=%s, console=%s, prometheus=%s)",
        service_name,
        settings.otlp_enabled,
        settings.console_export,
        settings.prometheus_enabled,
    )
    return telemetry
