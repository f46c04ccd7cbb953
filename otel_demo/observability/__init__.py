"""Observability utilities for logging, metrics, tracing and log emission."""

from .bootstrap import Telemetry, configure_telemetry
from .logging import bind_request_id, configure_logging, reset_request_id
from .logs import LogEmitter
from .metrics import (
    DemoInstruments,
    MetricRegistry,
    create_demo_instruments,
    metrics_endpoint,
    register_metrics_endpoint,
)
from .middleware import RequestContextMiddleware
from .tracing import RequestPhase, SpanEmitter, SpanHandle

__all__ = [
    "DemoInstruments",
    "LogEmitter",
    "MetricRegistry",
    "RequestContextMiddleware",
    "RequestPhase",
    "SpanEmitter",
    "SpanHandle",
    "Telemetry",
    "bind_request_id",
    "configure_logging",
    "configure_telemetry",
    "create_demo_instruments",
    "metrics_endpoint",
    "register_metrics_endpoint",
    "reset_request_id",
]
