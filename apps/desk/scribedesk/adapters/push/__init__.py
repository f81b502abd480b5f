"""Push-channel adapters."""

from .base import EventHandler, PushChannel, Subscription
from .memory_channel import InMemoryPushChannel, InMemoryPushHub

__all__ = [
    "EventHandler",
    "InMemoryPushChannel",
    "InMemoryPushHub",
    "PushChannel",
    "Subscription",
]
