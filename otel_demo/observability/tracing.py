"""Manual span lifecycle helpers built on the OpenTelemetry tracing API.

Every operation on a :class:`SpanHandle` is guarded: a failure inside the
tracing SDK is logged and never reaches the request handler.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

logger = logging.getLogger(__name__)


class RequestPhase(str, enum.Enum):
    """States a request moves through while it is handled."""

    RECEIVED = "received"
    AWAITING_DELAY = "awaiting-delay"
    AWAITING_OUTBOUND_CALL = "awaiting-outbound-call"
    RESPONDING = "responding"
    COMPLETED = "completed"


PHASE_EVENT = "request.phase"


class SpanHandle:
    """A span that can be annotated while open and is ended exactly once."""

    def __init__(self, span: Span) -> None:
        self._span = span
        self._ended = False

    @property
    def span(self) -> Span:
        return self._span

    @property
    def ended(self) -> bool:
        return self._ended

    def set_attribute(self, key: str, value: Any) -> None:
        if value is None:
            return
        try:
            self._span.set_attribute(key, value)
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to set span attribute %s", key)

    def add_event(self, name: str, attributes: Optional[Mapping[str, Any]] = None) -> None:
        try:
            self._span.add_event(name, attributes=dict(attributes or {}))
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to add span event %s", name)

    def record_exception(self, exc: BaseException) -> None:
        try:
            self._span.record_exception(exc)
            self._span.set_status(Status(StatusCode.ERROR, str(exc)))
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to record exception on span")

    @contextmanager
    def activate(self) -> Iterator["SpanHandle"]:
        """Make the span current for the block without ending it on exit."""

        with trace.use_span(
            self._span,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        ):
            yield self

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        try:
            self._span.end()
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to end span")


class SpanEmitter:
    """Starts request spans and annotates the currently active one."""

    def __init__(self, tracer: Tracer) -> None:
        self._tracer = tracer

    def start_span(
        self,
        name: str,
        attributes: Optional[Mapping[str, Any]] = None,
        kind: SpanKind = SpanKind.SERVER,
    ) -> SpanHandle:
        span = self._tracer.start_span(name, kind=kind, attributes=dict(attributes or {}))
        return SpanHandle(span)

    def current(self) -> SpanHandle:
        return SpanHandle(trace.get_current_span())

    def mark_phase(self, phase: RequestPhase) -> None:
        """Record a phase transition on the active span, if any."""

        self.current().add_event(PHASE_EVENT, {PHASE_EVENT: phase.value})
