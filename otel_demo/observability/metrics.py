"""Metric instrument registry and the Prometheus scrape endpoint."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Union

from fastapi import FastAPI
from opentelemetry.metrics import Counter, Histogram, Meter, UpDownCounter
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.requests import Request
from starlette.responses import Response

from otel_demo.errors import DuplicateInstrumentError

logger = logging.getLogger(__name__)

Attributes = Optional[Mapping[str, Union[str, bool, int, float]]]


class CounterHandle:
    """Monotonic counter; only positive deltas are accepted."""

    kind = "counter"

    def __init__(self, name: str, instrument: Counter) -> None:
        self.name = name
        self._instrument = instrument

    def add(self, amount: Union[int, float] = 1, attributes: Attributes = None) -> None:
        if amount <= 0:
            logger.warning("Dropping non-positive increment %s for counter %s", amount, self.name)
            return
        try:
            self._instrument.add(amount, attributes=attributes)
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to increment counter %s", self.name)


class UpDownCounterHandle:
    """Signed counter used to track work currently in flight."""

    kind = "up_down_counter"

    def __init__(self, name: str, instrument: UpDownCounter) -> None:
        self.name = name
        self._instrument = instrument

    def add(self, amount: Union[int, float], attributes: Attributes = None) -> None:
        try:
            self._instrument.add(amount, attributes=attributes)
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to update up-down counter %s", self.name)


class HistogramHandle:
    """Value distribution; every ``record`` call is an independent sample."""

    kind = "histogram"

    def __init__(self, name: str, instrument: Histogram) -> None:
        self.name = name
        self._instrument = instrument

    def record(self, value: Union[int, float], attributes: Attributes = None) -> None:
        try:
            self._instrument.record(value, attributes=attributes)
        except Exception:  # pragma: no cover - SDK failures are not expected
            logger.exception("Failed to record histogram sample for %s", self.name)


InstrumentHandle = Union[CounterHandle, UpDownCounterHandle, HistogramHandle]


class MetricRegistry:
    """Process-wide set of named instruments backed by one OpenTelemetry meter.

    Instruments are singletons keyed by name: requesting an existing name with
    the same kind returns the registered handle, requesting it with another
    kind raises :class:`DuplicateInstrumentError`.
    """

    def __init__(self, meter: Meter) -> None:
        self._meter = meter
        self._instruments: Dict[str, InstrumentHandle] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, description: str = "", unit: str = "") -> CounterHandle:
        return self._get_or_create(
            name,
            CounterHandle,
            lambda: self._meter.create_counter(name, unit=unit, description=description),
        )

    def up_down_counter(self, name: str, description: str = "", unit: str = "") -> UpDownCounterHandle:
        return self._get_or_create(
            name,
            UpDownCounterHandle,
            lambda: self._meter.create_up_down_counter(name, unit=unit, description=description),
        )

    def histogram(self, name: str, description: str = "", unit: str = "") -> HistogramHandle:
        return self._get_or_create(
            name,
            HistogramHandle,
            lambda: self._meter.create_histogram(name, unit=unit, description=description),
        )

    def get(self, name: str) -> Optional[InstrumentHandle]:
        return self._instruments.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._instruments

    def _get_or_create(self, name: str, handle_cls, factory: Callable[[], object]):
        with self._lock:
            existing = self._instruments.get(name)
            if existing is not None:
                if not isinstance(existing, handle_cls):
                    raise DuplicateInstrumentError(
                        f"Instrument {name!r} is already registered as a {existing.kind}"
                    )
                return existing

            handle = handle_cls(name, factory())
            self._instruments[name] = handle
            logger.debug("Registered %s instrument %s", handle.kind, name)
            return handle


@dataclass(slots=True)
class DemoInstruments:
    """The three instruments shared by every request handler."""

    requests: CounterHandle
    active_requests: UpDownCounterHandle
    request_duration: HistogramHandle


def create_demo_instruments(registry: MetricRegistry, prefix: str) -> DemoInstruments:
    """Create (once) the request counter, in-flight gauge and duration histogram."""

    return DemoInstruments(
        requests=registry.counter(
            f"{prefix}.server.requests",
            description="Total number of HTTP requests received.",
            unit="{requests}",
        ),
        active_requests=registry.up_down_counter(
            f"{prefix}.server.active_requests",
            description="Number of in-flight requests",
            unit="{requests}",
        ),
        request_duration=registry.histogram(
            f"{prefix}.client.request.duration",
            description="The duration of an outgoing HTTP request.",
            unit="ms",
        ),
    )


async def metrics_endpoint(_: Request) -> Response:
    """Render the Prometheus exposition of the default registry."""

    payload = generate_latest()
    return Response(payload, media_type=CONTENT_TYPE_LATEST)


def register_metrics_endpoint(app: FastAPI) -> None:
    """Expose a Prometheus scrape endpoint on ``/metrics``."""

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    logger.info("Registered /metrics endpoint for Prometheus scraping")
