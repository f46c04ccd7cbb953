"""Exception hierarchy shared by the handlers and the telemetry bootstrap."""


class OtelDemoError(Exception):
    """Base class for errors raised by this service."""


class InducedError(OtelDemoError):
    """Randomly injected failure of the root endpoint."""


class OutboundCallError(OtelDemoError):
    """The upstream call made by ``/fetch`` failed."""


class StartupConfigError(OtelDemoError):
    """Required configuration is missing; the process must not serve."""


class DuplicateInstrumentError(OtelDemoError):
    """An instrument name is already registered with a different kind."""
