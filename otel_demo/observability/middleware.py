"""ASGI middleware for request context, request spans and access logs."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, FrozenSet

from opentelemetry.trace import SpanKind
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from otel_demo.config.settings import Settings
from otel_demo.observability.logging import bind_request_id, reset_request_id
from otel_demo.observability.tracing import PHASE_EVENT, RequestPhase, SpanEmitter, SpanHandle

logger = logging.getLogger(__name__)

_REDACTED_HEADERS: FrozenSet[str] = frozenset({"authorization", "cookie", "proxy-authorization"})
_UNTRACED_PATHS: FrozenSet[str] = frozenset({"/metrics", "/health"})


def _request_url(scope: Scope, headers: Headers) -> str:
    scheme = scope.get("scheme", "http")
    host = headers.get("host")
    if not host:
        server = scope.get("server")
        host = f"{server[0]}:{server[1]}" if server else "localhost"
    url = f"{scheme}://{host}{scope.get('path', '')}"
    query = scope.get("query_string", b"")
    if query:
        url = f"{url}?{query.decode('latin-1')}"
    return url


class RequestContextMiddleware:
    """Start a span on request entry and end it once the response is written.

    ``on_request_start`` runs before any route logic and ``on_request_end``
    runs after the wrapped application returned, whether it succeeded or
    raised. Pass ``SpanKind.INTERNAL`` when a framework instrumentation
    already opens the SERVER span for the request.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        spans: SpanEmitter,
        span_kind: SpanKind = SpanKind.SERVER,
    ) -> None:
        self.app = app
        self._settings = settings
        self._spans = spans
        self._span_kind = span_kind

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get(self._settings.request_id_header) or str(uuid.uuid4())
        token = bind_request_id(request_id)
        method = scope.get("method", "GET")
        path = scope.get("path", "")
        traced = path not in _UNTRACED_PATHS

        span = self.on_request_start(scope, headers, request_id) if traced else None
        status_code = 500
        start = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message.get("status", 500))
                response_headers = MutableHeaders(scope=message)
                response_headers.setdefault(self._settings.request_id_header, request_id)
            await send(message)

        try:
            if span is None:
                await self.app(scope, receive, send_wrapper)
            else:
                with span.activate():
                    await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if span is not None:
                span.record_exception(exc)
            logger.exception(
                "Unhandled exception during request",
                extra={"method": method, "route": path, "status_code": 500},
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if span is not None:
                self.on_request_end(span, status_code)
            logger.info(
                "%s %s -> %s in %.2fms",
                method,
                path,
                status_code,
                duration_ms,
                extra={
                    "method": method,
                    "route": path,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            reset_request_id(token)

    def on_request_start(self, scope: Scope, headers: Headers, request_id: str) -> SpanHandle:
        method = scope.get("method", "GET")
        attributes: Dict[str, Any] = {
            "http.request.method": method,
            "url.full": _request_url(scope, headers),
            "url.path": scope.get("path", ""),
            "http.request.id": request_id,
        }
        for name in set(headers.keys()):
            if name in _REDACTED_HEADERS:
                continue
            attributes[f"http.request.header.{name}"] = headers.getlist(name)

        span = self._spans.start_span(f"{method} {scope.get('path', '')}", attributes, kind=self._span_kind)
        span.add_event(PHASE_EVENT, {PHASE_EVENT: RequestPhase.RECEIVED.value})
        return span

    def on_request_end(self, span: SpanHandle, status_code: int) -> None:
        span.set_attribute("http.response.status_code", status_code)
        span.add_event(PHASE_EVENT, {PHASE_EVENT: RequestPhase.COMPLETED.value})
        span.end()
