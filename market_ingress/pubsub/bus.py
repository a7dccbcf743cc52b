"""
In-process change bus.

Every subscription owns an independent queue; publishing delivers the
payload to all subscriptions currently attached to the topic. There is no
persistence or replay: a subscription only sees payloads published while
it is open.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, Set

_CLOSED = object()


class Subscription:
    """
    A cancellable stream of payloads for one topic.

    Usage:
        async with bus.subscribe("order_updated") as subscription:
            async for payload in subscription:
                ...
    """

    def __init__(self, bus: "ChangeBus", topic: str):
        self.topic = topic
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> "Subscription":
        """Attach to the bus; payloads published from now on are delivered."""
        if self._closed:
            raise RuntimeError(f"Subscription to {self.topic} is closed")
        if not self._opened:
            self._opened = True
            await self._bus._attach(self)
        return self

    async def close(self) -> None:
        """Detach from the bus and wake a pending reader. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._opened:
            await self._bus._detach(self)

    def deliver(self, payload: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(payload)

    async def get(self) -> Any:
        """Wait for the next payload; raises StopAsyncIteration once closed."""
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class ChangeBus:
    """Topic-addressed publish/subscribe within one process."""

    def __init__(self):
        self._subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)

    async def start(self) -> None:
        """Start background work; nothing to do in-process."""

    async def close(self) -> None:
        """Close every open subscription."""
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                await subscription.close()

    def subscribe(self, topic: str) -> Subscription:
        """Create a subscription; it receives payloads once opened."""
        return Subscription(self, topic)

    async def publish(self, topic: str, payload: Any) -> None:
        self.dispatch(topic, payload)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))

    def dispatch(self, topic: str, payload: Any) -> int:
        """Deliver a payload to the local subscriptions of a topic."""
        subscriptions = list(self._subscriptions.get(topic, ()))
        for subscription in subscriptions:
            subscription.deliver(payload)
        return len(subscriptions)

    async def _attach(self, subscription: Subscription) -> None:
        first = not self._subscriptions.get(subscription.topic)
        self._subscriptions[subscription.topic].add(subscription)
        if first:
            await self._on_first_subscriber(subscription.topic)

    async def _detach(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.topic)
        if not subscriptions:
            return
        subscriptions.discard(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.topic]
            await self._on_last_unsubscribed(subscription.topic)

    async def _on_first_subscriber(self, topic: str) -> None:
        """Hook for transports that subscribe remotely per topic."""

    async def _on_last_unsubscribed(self, topic: str) -> None:
        """Hook for transports that unsubscribe remotely per topic."""
