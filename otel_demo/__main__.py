"""Run the instrumented service with uvicorn."""

import logging
import sys

import uvicorn

from otel_demo.config.settings import get_settings
from otel_demo.errors import StartupConfigError
from otel_demo.main import build_app
from otel_demo.observability import configure_logging

logger = logging.getLogger("otel_demo")


def main() -> int:
    settings = get_settings()
    configure_logging(settings)

    try:
        app = build_app(settings)
    except StartupConfigError as exc:
        logger.error("Refusing to start: %s", exc)
        return 1

    app.state.telemetry.install_global()
    logger.info("Server is running on port %s (%s)", settings.port, settings.framework)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
