"""Fire-and-forget structured log emission through the OpenTelemetry logs API."""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional

from opentelemetry._logs import Logger, LogRecord, SeverityNumber

logger = logging.getLogger(__name__)


def _severity(value: int) -> SeverityNumber:
    try:
        return SeverityNumber(value)
    except ValueError:
        logger.warning("Unknown severity number %s, using UNSPECIFIED", value)
        return SeverityNumber.UNSPECIFIED


class LogEmitter:
    """Emit discrete log records that are not tied to a request lifecycle."""

    def __init__(self, otel_logger: Logger) -> None:
        self._logger = otel_logger

    def emit_log(
        self,
        severity: int,
        body: str,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Emit one record; failures are logged and swallowed."""

        try:
            severity_number = _severity(severity)
            now = time.time_ns()
            record = LogRecord(
                timestamp=now,
                observed_timestamp=now,
                severity_number=severity_number,
                severity_text=severity_number.name,
                body=body,
                attributes=dict(attributes) if attributes else None,
            )
            self._logger.emit(record)
        except Exception:
            logger.exception("Failed to emit log record")
