"""Push-channel interfaces.

A channel is one event stream per authenticated actor. Delivery is at-least-once:
consumers must tolerate duplicates and arbitrary ordering relative to snapshot fetches.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

EventHandler = Callable[[str, Any], None]


class Subscription:
    """Handle for one (event name, handler) registration."""

    __slots__ = ("_channel", "event_name", "handler", "active")

    def __init__(self, channel: "PushChannel", event_name: str, handler: EventHandler) -> None:
        self._channel = channel
        self.event_name = event_name
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._channel.unsubscribe(self)


class PushChannel(ABC):
    def __init__(self, actor_id: str) -> None:
        self.actor_id = actor_id

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the underlying connection is currently held."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and join the actor's event stream."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection and drop every subscription."""

    @abstractmethod
    def subscribe(self, event_name: str, handler: EventHandler) -> Subscription:
        """Register ``handler`` for ``event_name``."""

    @abstractmethod
    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove one registration; unknown or inactive subscriptions are ignored."""


__all__ = ["EventHandler", "PushChannel", "Subscription"]
