"""Service layer for ClipSqueeze."""

from .event_bus import EventChannel, Subscription
from .gateway import CommandGateway
from .optimizer_service import OptimizationPipeline

__all__ = ["CommandGateway", "EventChannel", "OptimizationPipeline", "Subscription"]
