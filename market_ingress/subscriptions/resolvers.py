"""
Order and token live subscriptions.

Arguments are validated when the subscription is created: a bad ``where``
document is rejected before anything is streamed.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional

from market_ingress.core.exceptions import ValidationError
from market_ingress.pubsub.bus import ChangeBus
from market_ingress.pubsub.topics import ORDER_UPDATED, TOKEN_UPDATED

from .multiplexer import Multiplexer, Payload, Restriction, SubscriptionStream
from .where import ORDER_SCHEMA, TOKEN_SCHEMA, Schema, Where

if TYPE_CHECKING:
    from market_ingress.repositories.market import MarketRepository

MAX_LIMIT = 1000

Finder = Callable[..., Awaitable[List[Payload]]]


@dataclass(frozen=True)
class SubscriptionArgs:
    query: bool = False
    where: Optional[Where] = None
    network: Optional[str] = None
    skip: int = 0
    limit: int = 100

    @classmethod
    def parse(cls, raw: Optional[Mapping[str, Any]], schema: Schema) -> "SubscriptionArgs":
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ValidationError("Subscription arguments must be an object")

        query = raw.get("query", False)
        network = raw.get("network")
        skip = raw.get("skip", 0)
        limit = raw.get("limit", 100)

        if not isinstance(query, bool):
            raise ValidationError("query must be a boolean", {"query": repr(query)})
        if network is not None and not isinstance(network, str):
            raise ValidationError("network must be a string", {"network": repr(network)})
        if isinstance(skip, bool) or not isinstance(skip, int) or skip < 0:
            raise ValidationError("skip must be a non-negative integer", {"skip": repr(skip)})
        if isinstance(limit, bool) or not isinstance(limit, int) or not 0 < limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}", {"limit": repr(limit)})

        return cls(
            query=query,
            where=Where.parse(raw.get("where"), schema),
            network=network,
            skip=skip,
            limit=limit,
        )


def _network_of(payload: Payload) -> Optional[str]:
    return payload.get("network")


def restrict_by_network(args: SubscriptionArgs) -> Restriction:
    return Restriction(key_of=_network_of, keys={args.network} if args.network else set())


def match_where(payload: Payload, args: SubscriptionArgs) -> bool:
    return args.where is None or args.where.matches(payload)


class LiveQuery:
    """A snapshot query plus the live tail of one topic."""

    def __init__(self, bus: ChangeBus, topic: str, schema: Schema, find: Finder):
        self.schema = schema
        self.find = find
        self.multiplexer: Multiplexer[SubscriptionArgs] = Multiplexer(
            bus,
            topic,
            init=self._snapshot,
            restrict=restrict_by_network,
            filter=match_where,
        )

    async def _snapshot(self, args: SubscriptionArgs) -> AsyncIterator[List[Payload]]:
        yield await self.find(where=args.where, network=args.network, skip=args.skip, limit=args.limit)

    def subscribe(self, raw_args: Optional[Mapping[str, Any]]) -> SubscriptionStream[SubscriptionArgs]:
        """Validate arguments and create a stream; raises on bad arguments."""
        args = SubscriptionArgs.parse(raw_args, self.schema)
        return self.multiplexer.subscribe(args, snapshot=args.query)


def order_subscriptions(bus: ChangeBus, repository: "MarketRepository") -> LiveQuery:
    return LiveQuery(bus, ORDER_UPDATED, ORDER_SCHEMA, repository.find_orders)


def token_subscriptions(bus: ChangeBus, repository: "MarketRepository") -> LiveQuery:
    return LiveQuery(bus, TOKEN_UPDATED, TOKEN_SCHEMA, repository.find_tokens)


def build_subscriptions(bus: ChangeBus, repository: "MarketRepository") -> Dict[str, LiveQuery]:
    return {
        "orders": order_subscriptions(bus, repository),
        "tokens": token_subscriptions(bus, repository),
    }
