"""
Change bus over Redis PUBLISH/SUBSCRIBE.

Publishing goes to Redis so every process sees it; one pubsub connection
per process subscribes to the topics that have local subscribers and a
reader task fans incoming messages out to them.
"""

import asyncio
import json
from typing import Any, Optional

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from market_ingress.core.logging import get_logger
from market_ingress.utils.serialization import jsonable

from .bus import ChangeBus

logger = get_logger(__name__)


class RedisChangeBus(ChangeBus):
    """Cross-process change bus; payloads travel as JSON."""

    def __init__(self, redis: Redis, prefix: str = "", read_timeout: float = 1.0):
        super().__init__()
        self.redis = redis
        self.prefix = prefix
        self.read_timeout = read_timeout
        self._pubsub: Optional[PubSub] = None
        self._reader: Optional[asyncio.Task] = None
        self.logger = logger.bind(service="change_bus")

    def _channel(self, topic: str) -> str:
        return f"{self.prefix}{topic}"

    def _topic(self, channel: str) -> str:
        return channel[len(self.prefix):] if channel.startswith(self.prefix) else channel

    async def start(self) -> None:
        if self._reader is not None:
            return
        self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        self._reader = asyncio.create_task(self._read_loop())
        self.logger.info("Change bus started", prefix=self.prefix)

    async def close(self) -> None:
        await super().close()
        if self._reader:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        self.logger.info("Change bus closed")

    async def publish(self, topic: str, payload: Any) -> None:
        await self.redis.publish(self._channel(topic), json.dumps(jsonable(payload)))

    async def _on_first_subscriber(self, topic: str) -> None:
        if self._pubsub is None:
            raise RuntimeError("Change bus not started. Call start() first.")
        await self._pubsub.subscribe(self._channel(topic))

    async def _on_last_unsubscribed(self, topic: str) -> None:
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel(topic))

    async def _read_loop(self) -> None:
        while True:
            if self._pubsub is None or not self._pubsub.subscribed:
                await asyncio.sleep(self.read_timeout / 10)
                continue
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self.read_timeout
                )
            except RedisError as e:
                self.logger.error("Change bus read failed", error=str(e))
                await asyncio.sleep(self.read_timeout)
                continue

            if not message or message.get("type") != "message":
                continue

            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError) as e:
                self.logger.warning("Dropping undecodable message", channel=message.get("channel"), error=str(e))
                continue

            self.dispatch(self._topic(message["channel"]), payload)
