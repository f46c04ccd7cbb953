from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otel_demo.config.settings import Settings
from otel_demo.observability import LogEmitter, Telemetry, configure_telemetry, create_demo_instruments
from otel_demo.services.demo import DemoService
from tests.helpers import RecordingOtelLogger, SleepRecorder, upstream_client


@dataclass
class TelemetryHarness:
    telemetry: Telemetry
    metric_reader: InMemoryMetricReader
    span_exporter: InMemorySpanExporter
    otel_logger: RecordingOtelLogger = field(default_factory=RecordingOtelLogger)

    def points(self, name: str) -> list:
        data = self.metric_reader.get_metrics_data()
        if data is None:
            return []
        points = []
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    def value(self, name: str) -> float:
        return sum(point.value for point in self.points(name))

    def finished_spans(self) -> list:
        return list(self.span_exporter.get_finished_spans())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        service_name="otel-demo-test",
        otlp_enabled=False,
        console_export=False,
        prometheus_enabled=False,
        auto_instrument=False,
    )


@pytest.fixture
def harness(settings: Settings) -> TelemetryHarness:
    reader = InMemoryMetricReader()
    exporter = InMemorySpanExporter()
    telemetry = configure_telemetry(
        settings,
        metric_readers=[reader],
        span_processors=[SimpleSpanProcessor(exporter)],
        log_processors=[],
    )
    recording_logger = RecordingOtelLogger()
    telemetry.logs = LogEmitter(recording_logger)
    yield TelemetryHarness(telemetry, reader, exporter, recording_logger)
    telemetry.shutdown()


@pytest.fixture
def make_service(settings: Settings, harness: TelemetryHarness):
    def factory(
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
        framework: str = "fastapi",
        service_settings: Optional[Settings] = None,
        logs: Optional[LogEmitter] = None,
    ) -> DemoService:
        return DemoService(
            settings=service_settings or settings,
            instruments=create_demo_instruments(harness.telemetry.metrics, framework),
            spans=harness.telemetry.spans,
            logs=logs or harness.telemetry.logs,
            client=client or upstream_client(),
            rng=rng,
            sleep=sleep or SleepRecorder(),
        )

    return factory
