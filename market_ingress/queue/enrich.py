"""
Fire-and-forget enrichment requests.

Requests are JSON documents appended to a Redis list; the external
enrichment worker pops them, and its results come back as ``token_updated``
events on the change bus.
"""

import json
from typing import Any, Dict

from redis.asyncio import Redis
from redis.exceptions import RedisError

from market_ingress.core.exceptions import QueueError
from market_ingress.core.logging import get_logger
from market_ingress.utils.serialization import jsonable

logger = get_logger(__name__)


class EnrichQueue:
    """Producer side of the enrichment queue."""

    def __init__(self, redis: Redis, name: str = "enrich", prefix: str = ""):
        self.redis = redis
        self.key = f"{prefix}{name}"
        self.logger = logger.bind(service="enrich_queue", queue=self.key)

    async def enqueue(self, *items: Dict[str, Any]) -> int:
        """Append requests in one round trip; returns the new queue length."""
        if not items:
            return 0
        try:
            length = await self.redis.rpush(self.key, *(json.dumps(jsonable(item)) for item in items))
        except RedisError as e:
            raise QueueError("Failed to enqueue enrichment", {"queue": self.key, "error": str(e)}) from e

        self.logger.debug("Enrichment enqueued", count=len(items), length=length)
        return length

    async def length(self) -> int:
        return await self.redis.llen(self.key)
