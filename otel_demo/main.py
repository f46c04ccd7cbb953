"""Application factories for the FastAPI and Starlette variants."""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI
from starlette.applications import Starlette
from starlette.middleware import Middleware

from otel_demo.api.router import api_router
from otel_demo.api.starlette_routes import build_routes
from otel_demo.config.settings import Settings, get_settings
from otel_demo.observability import (
    RequestContextMiddleware,
    Telemetry,
    configure_logging,
    configure_telemetry,
    create_demo_instruments,
    register_metrics_endpoint,
)
from otel_demo.services.demo import DemoService

logger = logging.getLogger(__name__)


def build_demo_service(
    settings: Settings,
    telemetry: Telemetry,
    *,
    framework: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
) -> DemoService:
    """Create the shared instruments and the handler service for one framework variant."""

    return DemoService(
        settings=settings,
        instruments=create_demo_instruments(telemetry.metrics, framework or settings.framework),
        spans=telemetry.spans,
        logs=telemetry.logs,
        client=client,
        on_client_created=telemetry.instrument_client,
        rng=rng,
    )


def _lifespan(owns_telemetry: bool):
    @asynccontextmanager
    async def lifespan(app: Any):
        logger.info("Application startup...")
        try:
            yield
        finally:
            logger.info("Application shutdown...")
            service: Optional[DemoService] = getattr(app.state, "demo_service", None)
            if service is not None:
                await service.shutdown()
            if owns_telemetry:
                app.state.telemetry.shutdown()

    return lifespan


def _prepare(
    settings: Optional[Settings],
    telemetry: Optional[Telemetry],
    service: Optional[DemoService],
    framework: str,
) -> tuple[Settings, Telemetry, DemoService, bool]:
    settings = settings or get_settings()
    owns_telemetry = telemetry is None
    if telemetry is None:
        telemetry = configure_telemetry(settings)
        configure_logging(settings, telemetry.logger_provider)
    else:
        configure_logging(settings)
    if service is None:
        service = build_demo_service(settings, telemetry, framework=framework)
    return settings, telemetry, service, owns_telemetry


def create_app(
    settings: Optional[Settings] = None,
    *,
    telemetry: Optional[Telemetry] = None,
    service: Optional[DemoService] = None,
) -> FastAPI:
    """Build the FastAPI variant.

    Telemetry built here is owned by the application and shut down with it;
    telemetry passed in belongs to the caller.
    """

    settings, telemetry, service, owns_telemetry = _prepare(settings, telemetry, service, "fastapi")

    application = FastAPI(
        title=f"{telemetry.service_name} (FastAPI)",
        version=settings.service_version,
        lifespan=_lifespan(owns_telemetry),
    )
    application.state.telemetry = telemetry
    application.state.demo_service = service
    application.add_middleware(
        RequestContextMiddleware,
        settings=settings,
        spans=telemetry.spans,
        span_kind=telemetry.request_span_kind,
    )
    application.include_router(api_router)
    if settings.prometheus_enabled:
        register_metrics_endpoint(application)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    telemetry.instrument_app(application, "fastapi")
    return application


def create_starlette_app(
    settings: Optional[Settings] = None,
    *,
    telemetry: Optional[Telemetry] = None,
    service: Optional[DemoService] = None,
) -> Starlette:
    """Build the plain Starlette variant with the same HTTP surface."""

    settings, telemetry, service, owns_telemetry = _prepare(settings, telemetry, service, "starlette")

    application = Starlette(
        routes=build_routes(metrics=settings.prometheus_enabled),
        middleware=[
            Middleware(
                RequestContextMiddleware,
                settings=settings,
                spans=telemetry.spans,
                span_kind=telemetry.request_span_kind,
            )
        ],
        lifespan=_lifespan(owns_telemetry),
    )
    application.state.telemetry = telemetry
    application.state.demo_service = service

    telemetry.instrument_app(application, "starlette")
    return application


def build_app(settings: Optional[Settings] = None) -> Any:
    """Build the variant selected by ``settings.framework``."""

    settings = settings or get_settings()
    if settings.framework == "starlette":
        return create_starlette_app(settings)
    return create_app(settings)
