"""Application configuration and environment management."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from otel_demo.errors import StartupConfigError


class Settings(BaseSettings):
    """Centralised application settings.

    Telemetry destinations fall back to the OTLP exporter defaults (and the
    standard ``OTEL_EXPORTER_OTLP_*`` variables) when left unset.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Core service metadata
    service_name: Optional[str] = Field(
        default=None,
        alias="OTEL_SERVICE_NAME",
        description="Service name attached to every exported signal. Required.",
    )
    service_version: str = Field(
        default="0.1.0",
        alias="OTEL_SERVICE_VERSION",
        description="Service version attached to the telemetry resource.",
    )
    framework: Literal["fastapi", "starlette"] = Field(
        default="fastapi",
        alias="FRAMEWORK",
        description="ASGI framework variant used to serve the HTTP surface.",
    )
    host: str = Field(default="0.0.0.0", alias="HOST", description="Interface the server binds to.")
    port: PositiveInt = Field(default=3000, alias="PORT", description="Port the server listens on.")
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level used for application loggers.",
    )
    request_id_header: str = Field(
        default="X-Request-ID",
        alias="REQUEST_ID_HEADER",
        description="HTTP header used to propagate the request identifier.",
    )

    # OpenTelemetry export
    otlp_enabled: bool = Field(
        default=True,
        alias="OTLP_ENABLED",
        description="Export metrics, traces and logs through OTLP/HTTP.",
    )
    otlp_traces_endpoint: Optional[str] = Field(
        default=None,
        alias="OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
        description="Override for the OTLP traces endpoint.",
    )
    otlp_metrics_endpoint: Optional[str] = Field(
        default=None,
        alias="OTEL_EXPORTER_OTLP_METRICS_ENDPOINT",
        description="Override for the OTLP metrics endpoint.",
    )
    otlp_logs_endpoint: Optional[str] = Field(
        default=None,
        alias="OTEL_EXPORTER_OTLP_LOGS_ENDPOINT",
        description="Override for the OTLP logs endpoint.",
    )
    console_export: bool = Field(
        default=False,
        alias="OTEL_CONSOLE_EXPORT",
        description="Mirror every signal to stdout through the console exporters.",
    )
    metric_export_interval_ms: PositiveInt = Field(
        default=60000,
        alias="OTEL_METRIC_EXPORT_INTERVAL",
        description="Interval between two periodic metric exports.",
    )
    prometheus_enabled: bool = Field(
        default=True,
        alias="PROMETHEUS_ENABLED",
        description="Expose the OpenTelemetry metrics on a Prometheus /metrics endpoint.",
    )
    auto_instrument: bool = Field(
        default=True,
        alias="OTEL_AUTO_INSTRUMENT",
        description="Enable framework and httpx auto-instrumentation.",
    )

    # Endpoint behaviour
    root_max_delay_ms: float = Field(
        default=100.0,
        ge=0.0,
        alias="ROOT_MAX_DELAY_MS",
        description="Upper bound (exclusive) of the random delay applied by the root endpoint.",
    )
    root_error_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        alias="ROOT_ERROR_RATE",
        description="Probability that the root endpoint fails with an induced error.",
    )
    delay_ms: float = Field(
        default=5000.0,
        ge=0.0,
        alias="DELAY_MS",
        description="Fixed delay applied by the /delay endpoint.",
    )
    fetch_url: str = Field(
        default="https://jsonplaceholder.typicode.com/todos/1",
        alias="FETCH_URL",
        description="Upstream URL proxied by the /fetch endpoint.",
    )
    fetch_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        alias="FETCH_TIMEOUT_SECONDS",
        description="Network timeout applied to the /fetch upstream call.",
    )

    @field_validator("service_name", mode="before")
    @classmethod
    def _blank_service_name(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def require_service_name(self) -> str:
        """Return the configured service name or fail startup."""

        if not self.service_name:
            raise StartupConfigError("OTEL_SERVICE_NAME must be set before the service can start")
        return self.service_name


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
