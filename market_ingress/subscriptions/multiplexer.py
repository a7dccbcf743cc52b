"""
Snapshot-then-live subscription streams over the change bus.

A stream moves through three states:

    INIT    the bus subscription is opened, then the optional snapshot
            batches are forwarded
    LIVE    bus payloads are restricted, filtered and forwarded one per
            batch
    CLOSED  ``aclose()`` (or leaving ``async with``) released the bus
            subscription; nothing more is yielded

The bus subscription opens before the snapshot runs, so an event that
lands between the snapshot query and the live tail is delivered (possibly
duplicating a snapshot row) instead of being lost.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Generic, Hashable, List, Optional, Set, TypeVar

from market_ingress.core.logging import get_logger
from market_ingress.pubsub.bus import ChangeBus, Subscription

logger = get_logger(__name__)

Payload = Dict[str, Any]
ContextT = TypeVar("ContextT")


class StreamState(Enum):
    INIT = "init"
    LIVE = "live"
    CLOSED = "closed"


@dataclass
class Restriction:
    """
    Partition scoping for live payloads.

    ``keys`` starts with whatever the subscription arguments pin down; the
    snapshot adds the keys of its rows, and when it is still empty the
    first live payload fixes it.
    """
    key_of: Callable[[Payload], Hashable]
    keys: Set[Hashable] = field(default_factory=set)

    def admit(self, payload: Payload) -> bool:
        key = self.key_of(payload)
        if not self.keys:
            self.keys.add(key)
            return True
        return key in self.keys


Initializer = Callable[[ContextT], AsyncIterator[List[Payload]]]
RestrictionFactory = Callable[[ContextT], Optional[Restriction]]
Predicate = Callable[[Payload, ContextT], bool]


class Multiplexer(Generic[ContextT]):
    """Builds subscription streams for one change bus topic."""

    def __init__(
        self,
        bus: ChangeBus,
        topic: str,
        init: Optional[Initializer] = None,
        restrict: Optional[RestrictionFactory] = None,
        filter: Optional[Predicate] = None,
    ):
        self.bus = bus
        self.topic = topic
        self.init = init
        self.restrict = restrict
        self.filter = filter

    def subscribe(self, context: ContextT, snapshot: bool = True) -> "SubscriptionStream[ContextT]":
        return SubscriptionStream(self, context, snapshot)


class SubscriptionStream(Generic[ContextT]):
    """
    Async iterator of payload batches with an explicit close.

    Usage:
        async with multiplexer.subscribe(context) as stream:
            async for batch in stream:
                ...
    """

    def __init__(self, multiplexer: Multiplexer, context: ContextT, snapshot: bool):
        self.multiplexer = multiplexer
        self.context = context
        self.state = StreamState.INIT
        self.restriction = multiplexer.restrict(context) if multiplexer.restrict else None
        self._want_snapshot = snapshot and multiplexer.init is not None
        self._subscription: Subscription = multiplexer.bus.subscribe(multiplexer.topic)
        self._snapshot: Optional[AsyncIterator[List[Payload]]] = None
        self._started = False
        self._reading_snapshot = False
        self.logger = logger.bind(service="subscription", topic=multiplexer.topic)

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    async def open(self) -> "SubscriptionStream[ContextT]":
        if self._started or self.closed:
            return self
        self._started = True
        await self._subscription.open()
        if self._want_snapshot:
            self._snapshot = self.multiplexer.init(self.context)
        else:
            self.state = StreamState.LIVE
        return self

    async def aclose(self) -> None:
        """Stop the stream and release the bus subscription. Idempotent."""
        if self.closed:
            return
        self.state = StreamState.CLOSED
        await self._subscription.close()
        if not self._reading_snapshot:
            await self._close_snapshot()
        self.logger.debug("Subscription closed")

    def __aiter__(self) -> "SubscriptionStream[ContextT]":
        return self

    async def __anext__(self) -> List[Payload]:
        if not self._started:
            await self.open()
        if self.closed:
            raise StopAsyncIteration

        if self.state is StreamState.INIT:
            batch = await self._next_snapshot_batch()
            if batch is not None:
                return batch
            if self.closed:
                raise StopAsyncIteration
            self.state = StreamState.LIVE

        return await self._next_live_batch()

    async def _next_snapshot_batch(self) -> Optional[List[Payload]]:
        if self._snapshot is None:
            return None
        self._reading_snapshot = True
        try:
            batch = await self._snapshot.__anext__()
        except StopAsyncIteration:
            await self._close_snapshot()
            return None
        finally:
            self._reading_snapshot = False

        if self.closed:
            await self._close_snapshot()
            raise StopAsyncIteration

        batch = list(batch)
        if self.restriction is not None:
            self.restriction.keys.update(self.restriction.key_of(payload) for payload in batch)
        return batch

    async def _next_live_batch(self) -> List[Payload]:
        filter_ = self.multiplexer.filter
        while True:
            try:
                payload = await self._subscription.get()
            except StopAsyncIteration:
                self.state = StreamState.CLOSED
                raise

            if self.restriction is not None and not self.restriction.admit(payload):
                continue
            if filter_ is not None and not filter_(payload, self.context):
                continue
            return [payload]

    async def _close_snapshot(self) -> None:
        snapshot, self._snapshot = self._snapshot, None
        aclose = getattr(snapshot, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "SubscriptionStream[ContextT]":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
