"""
Live subscriptions: filter language, multiplexer and resolvers.
"""

from .multiplexer import Multiplexer, Restriction, StreamState, SubscriptionStream
from .resolvers import LiveQuery, SubscriptionArgs, build_subscriptions
from .where import ORDER_SCHEMA, TOKEN_SCHEMA, Where

__all__ = [
    "Multiplexer",
    "Restriction",
    "StreamState",
    "SubscriptionStream",
    "LiveQuery",
    "SubscriptionArgs",
    "build_subscriptions",
    "ORDER_SCHEMA",
    "TOKEN_SCHEMA",
    "Where",
]
