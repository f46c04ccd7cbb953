"""Request handlers whose only job is to produce well-shaped telemetry."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from otel_demo.config.settings import Settings
from otel_demo.errors import InducedError, OutboundCallError
from otel_demo.observability.logs import LogEmitter
from otel_demo.observability.metrics import DemoInstruments, UpDownCounterHandle
from otel_demo.observability.tracing import RequestPhase, SpanEmitter

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
TEXT_MEDIA_TYPE = "text/plain"

LOG_SEVERITY_NUMBER = 14
DURATION_ATTRIBUTES = {"method": "GET", "status": 200}

Finalizer = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class HandlerResult:
    """Framework-neutral response produced by a handler.

    ``finalizer`` runs once the response has been sent, or once sending it
    failed.
    """

    status_code: int
    body: Any
    media_type: str = JSON_MEDIA_TYPE
    finalizer: Optional[Finalizer] = None


class InFlightRequest:
    """Pair one in-flight increment with exactly one decrement.

    Leaving the ``with`` block releases the gauge unless :meth:`defer` was
    called, in which case the owner must call :meth:`release` later. An
    exception leaving the block always releases.
    """

    def __init__(self, gauge: UpDownCounterHandle) -> None:
        self._gauge = gauge
        self._released = False
        self._deferred = False

    def __enter__(self) -> "InFlightRequest":
        self._gauge.add(1)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None or not self._deferred:
            self.release()
        return False

    @property
    def released(self) -> bool:
        return self._released

    def defer(self) -> None:
        self._deferred = True

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gauge.add(-1)


class DemoService:
    """The five endpoint behaviours, expressed independently of any framework."""

    def __init__(
        self,
        *,
        settings: Settings,
        instruments: DemoInstruments,
        spans: SpanEmitter,
        logs: LogEmitter,
        client: Optional[httpx.AsyncClient] = None,
        on_client_created: Optional[Callable[[httpx.AsyncClient], None]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._settings = settings
        self._instruments = instruments
        self._spans = spans
        self._logs = logs
        self._client = client
        self._on_client_created = on_client_created
        self._client_lock = asyncio.Lock()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock

    async def shutdown(self) -> None:
        """Close the outbound HTTP client."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def root(self) -> HandlerResult:
        """Random delay, then a random payload or an induced failure."""

        self._instruments.requests.add(1)
        with InFlightRequest(self._instruments.active_requests):
            try:
                delay_ms = self._rng.random() * self._settings.root_max_delay_ms
                self._spans.mark_phase(RequestPhase.AWAITING_DELAY)
                await self._sleep(delay_ms / 1000)
                if self._rng.random() > 1 - self._settings.root_error_rate:
                    raise InducedError("FFF")
                self._spans.mark_phase(RequestPhase.RESPONDING)
                return HandlerResult(200, {"message": self._rng.random() * 10})
            except Exception as exc:
                logger.warning("Root handler failed: %s", exc)
                self._spans.current().record_exception(exc)
                self._spans.mark_phase(RequestPhase.RESPONDING)
                return HandlerResult(400, {"message": str(exc)})

    async def data_echo(self, payload: Any) -> HandlerResult:
        """Echo ``payload["data"]`` when present."""

        self._instruments.requests.add(1)
        with InFlightRequest(self._instruments.active_requests):
            self._spans.mark_phase(RequestPhase.RESPONDING)
            if isinstance(payload, dict) and "data" in payload:
                return HandlerResult(200, {"message": payload["data"]})
            return HandlerResult(200, {"message": "No Data"})

    async def delayed(self) -> HandlerResult:
        """Fixed delay; the gauge is released and the duration recorded after sending."""

        start = self._clock()
        self._instruments.requests.add(1)
        with InFlightRequest(self._instruments.active_requests) as in_flight:
            self._spans.mark_phase(RequestPhase.AWAITING_DELAY)
            await self._sleep(self._settings.delay_ms / 1000)
            self._spans.mark_phase(RequestPhase.RESPONDING)
            in_flight.defer()

        async def finalize() -> None:
            # Decrement before recording the duration sample.
            in_flight.release()
            self._instruments.request_duration.record((self._clock() - start) * 1000, DURATION_ATTRIBUTES)

        return HandlerResult(200, "hello", media_type=TEXT_MEDIA_TYPE, finalizer=finalize)

    async def log_emission(self, payload: Any) -> HandlerResult:
        """Emit one structured log record built from the request body."""

        body = payload if isinstance(payload, dict) else {}
        msg = body.get("msg")
        data = body.get("data")
        self._logs.emit_log(
            LOG_SEVERITY_NUMBER,
            f"Log {'' if msg is None else msg}",
            data if isinstance(data, dict) else None,
        )
        return HandlerResult(200, "OK", media_type=TEXT_MEDIA_TYPE)

    async def outbound_fetch(self) -> HandlerResult:
        """Proxy the upstream JSON document, timing the full round trip."""

        start = self._clock()
        self._instruments.requests.add(1)
        with InFlightRequest(self._instruments.active_requests):
            try:
                self._spans.mark_phase(RequestPhase.AWAITING_OUTBOUND_CALL)
                payload = await self._fetch_upstream()
                self._spans.mark_phase(RequestPhase.RESPONDING)
                return HandlerResult(200, payload)
            except OutboundCallError as exc:
                logger.warning("Outbound fetch failed: %s", exc)
                self._spans.current().record_exception(exc)
                return HandlerResult(400, {"message": str(exc)})
            finally:
                self._instruments.request_duration.record((self._clock() - start) * 1000, DURATION_ATTRIBUTES)

    async def _fetch_upstream(self) -> Any:
        url = self._settings.fetch_url
        try:
            client = await self._require_client()
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise OutboundCallError(f"GET {url} failed: {exc}") from exc
        except ValueError as exc:
            raise OutboundCallError(f"GET {url} returned invalid JSON") from exc
        except Exception as exc:
            raise OutboundCallError(f"GET {url} failed: {exc!r}") from exc

    async def _require_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._settings.fetch_timeout_seconds))
                if self._on_client_created is not None:
                    self._on_client_created(self._client)
                logger.info(
                    "Initialised outbound client with timeout %.1fs",
                    self._settings.fetch_timeout_seconds,
                )
            return self._client
