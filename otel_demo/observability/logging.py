"""Logging helpers that tag every record with the request id and active span."""

from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from logging.config import dictConfig
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler

from otel_demo.config.settings import Settings

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | "
    "request_id=%(request_id)s trace_id=%(trace_id)s span_id=%(span_id)s | %(message)s"
)
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
_UNSET = "-"

_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default=_UNSET)


class RequestIdFilter(logging.Filter):
    """Copy the bound request id and the current span context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _REQUEST_ID.get()
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = trace.format_trace_id(span_context.trace_id)
            record.span_id = trace.format_span_id(span_context.span_id)
        else:
            record.trace_id = record.span_id = _UNSET
        return True


def bind_request_id(request_id: str) -> Token[str]:
    """Bind the provided request identifier in the current context."""

    return _REQUEST_ID.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _REQUEST_ID.reset(token)


def _logging_config(log_level: str) -> Dict[str, Any]:
    routed = {"handlers": ["default"], "level": log_level}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIdFilter}},
        "formatters": {"standard": {"format": LOG_FORMAT}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "filters": ["request_id"],
            }
        },
        "loggers": {
            "": dict(routed),
            **{name: {**routed, "propagate": False} for name in _SERVER_LOGGERS},
        },
    }


def configure_logging(settings: Settings, logger_provider: Optional[LoggerProvider] = None) -> None:
    """Route application and uvicorn logs through one formatted stream handler.

    When ``logger_provider`` is given, records are also exported as
    OpenTelemetry log records.
    """

    log_level = settings.log_level.upper()
    dictConfig(_logging_config(log_level))

    root = logging.getLogger()
    # Handlers added outside dictConfig only see records that passed the logger filter.
    root.addFilter(RequestIdFilter())
    if logger_provider is not None:
        root.addHandler(LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider))

    logging.getLogger(__name__).debug("Logging configured at level %s", log_level)
