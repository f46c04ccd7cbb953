"""Service exports."""

from .demo import DemoService, HandlerResult, InFlightRequest

__all__ = [
    "DemoService",
    "HandlerResult",
    "InFlightRequest",
]
