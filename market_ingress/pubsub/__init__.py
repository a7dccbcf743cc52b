"""
Topic-addressed publish/subscribe used to fan out record changes.
"""

from .bus import ChangeBus, Subscription
from .redis_bus import RedisChangeBus
from .topics import ORDER_UPDATED, TOKEN_UPDATED

__all__ = [
    "ChangeBus",
    "Subscription",
    "RedisChangeBus",
    "ORDER_UPDATED",
    "TOKEN_UPDATED",
]
