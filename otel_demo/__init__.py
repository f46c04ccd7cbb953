"""HTTP service wired to an OpenTelemetry metrics, traces and logs pipeline."""

__version__ = "0.1.0"
