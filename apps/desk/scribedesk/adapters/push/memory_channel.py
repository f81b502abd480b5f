"""In-process push transport for local development and tests."""

from __future__ import annotations

import logging
from typing import Any

from scribedesk.adapters.push.base import EventHandler, PushChannel, Subscription
from scribedesk.core.logging_safety import safe_log_identifier
from scribedesk.errors import ChannelInUseError

logger = logging.getLogger(__name__)


class InMemoryPushHub:
    """Fans published events out to the single live connection of each actor."""

    def __init__(self) -> None:
        self._connections: dict[str, InMemoryPushChannel] = {}
        self.published_count = 0

    def channel_for(self, actor_id: str) -> "InMemoryPushChannel":
        return InMemoryPushChannel(self, actor_id)

    def is_connected(self, actor_id: str) -> bool:
        return actor_id in self._connections

    def publish(self, actor_id: str, event_name: str, payload: Any, *, copies: int = 1) -> int:
        """Deliver ``copies`` identical events; returns the number of handler calls."""
        channel = self._connections.get(actor_id)
        self.published_count += copies
        if channel is None:
            return 0
        delivered = 0
        for _ in range(copies):
            delivered += channel.deliver(event_name, payload)
        return delivered

    def _attach(self, channel: "InMemoryPushChannel") -> None:
        current = self._connections.get(channel.actor_id)
        if current is not None and current is not channel:
            raise ChannelInUseError("Actor already holds a push-channel connection")
        self._connections[channel.actor_id] = channel

    def _detach(self, channel: "InMemoryPushChannel") -> None:
        if self._connections.get(channel.actor_id) is channel:
            del self._connections[channel.actor_id]


class InMemoryPushChannel(PushChannel):
    def __init__(self, hub: InMemoryPushHub, actor_id: str) -> None:
        super().__init__(actor_id)
        self._hub = hub
        self._connected = False
        self._subscriptions: dict[str, list[Subscription]] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def subscription_count(self) -> int:
        return sum(len(items) for items in self._subscriptions.values())

    async def connect(self) -> None:
        if self._connected:
            return
        self._hub._attach(self)
        self._connected = True
        logger.info("push.connected actor_id=%s", safe_log_identifier(self.actor_id, prefix="aid"))

    async def disconnect(self) -> None:
        for items in self._subscriptions.values():
            for subscription in items:
                subscription.active = False
        self._subscriptions.clear()
        if self._connected:
            self._hub._detach(self)
            self._connected = False
            logger.info("push.disconnected actor_id=%s", safe_log_identifier(self.actor_id, prefix="aid"))

    def subscribe(self, event_name: str, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, event_name, handler)
        self._subscriptions.setdefault(event_name, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        items = self._subscriptions.get(subscription.event_name, [])
        if subscription in items:
            items.remove(subscription)
        subscription.active = False

    def deliver(self, event_name: str, payload: Any) -> int:
        if not self._connected:
            return 0
        handlers = [item.handler for item in self._subscriptions.get(event_name, []) if item.active]
        for handler in handlers:
            handler(event_name, payload)
        return len(handlers)


__all__ = ["InMemoryPushChannel", "InMemoryPushHub"]
