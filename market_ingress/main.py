"""
Service container and application entry point.

``Services`` owns every connection and background component of the
process. Nothing is created at import time: ``start()`` builds and starts
the components, ``stop()`` tears them down in reverse order.
"""

from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI

from market_ingress.api.main import create_app
from market_ingress.core.config import DatabaseConfig, Settings, settings
from market_ingress.core.database import Database
from market_ingress.core.logging import get_logger, setup_logging
from market_ingress.core.redis import RedisClient
from market_ingress.indexer.client import IndexerClient
from market_ingress.indexer.ingress import IngressPartition, IngressService
from market_ingress.indexer.notifier import ChangeNotifier
from market_ingress.indexer.upserter import Upserter
from market_ingress.models.order import Order
from market_ingress.models.token import Token
from market_ingress.pubsub.redis_bus import RedisChangeBus
from market_ingress.queue.enrich import EnrichQueue
from market_ingress.queue.job_queue import JobOptions, JobQueue
from market_ingress.repositories.cursor import CursorStore
from market_ingress.repositories.market import MarketRepository
from market_ingress.repositories.records import RecordStore
from market_ingress.repositories.registry import RegistryStore
from market_ingress.services.enrichment import EnrichmentWaiter
from market_ingress.services.network import Network, build_networks
from market_ingress.services.registry import ContractRegistry
from market_ingress.services.token import TokenService
from market_ingress.subscriptions.resolvers import LiveQuery, build_subscriptions

logger = get_logger(__name__)


class Services:
    """Explicitly constructed service graph of one process."""

    def __init__(self, config: Settings):
        self.settings = config
        self.started = False

        url = DatabaseConfig.get_database_url(config.database_url)
        engine_options = DatabaseConfig.get_engine_config(config) if url.startswith("postgresql") else {}
        self.database = Database(url, echo=config.debug, **engine_options)
        self.redis = RedisClient(config.redis_url)

        self.bus: Optional[RedisChangeBus] = None
        self.enrich_queue: Optional[EnrichQueue] = None
        self.repository: Optional[MarketRepository] = None
        self.clients: Dict[str, IndexerClient] = {}
        self.networks: Dict[str, Network] = {}
        self.registry: Optional[ContractRegistry] = None
        self.waiter: Optional[EnrichmentWaiter] = None
        self.tokens: Optional[TokenService] = None
        self.subscriptions: Dict[str, LiveQuery] = {}
        self.ingress: Optional[IngressService] = None

    async def start(self) -> None:
        config = self.settings
        logger.info("Starting services", environment=config.environment, networks=[n.name for n in config.networks])

        await self.database.init()
        if config.is_development:
            await self.database.create_tables()
        await self.redis.connect()

        self.bus = RedisChangeBus(self.redis.client, prefix=config.redis_prefix)
        await self.bus.start()
        self.enrich_queue = EnrichQueue(self.redis.client, config.enrich_queue_name, prefix=config.redis_prefix)
        self.repository = MarketRepository(self.database)

        for network in config.networks:
            client = IndexerClient(network.indexer_url, config.indexer_timeout, network.name)
            await client.start()
            self.clients[network.name] = client
        self.networks = build_networks(config.networks, config.indexer_timeout)

        self.registry = ContractRegistry(
            RegistryStore(self.database),
            self.networks,
            extensions=config.registry_extension_interfaces,
            cache_size=config.registry_cache_size,
            undetermined_ttl=config.registry_undetermined_ttl,
        )
        self.waiter = EnrichmentWaiter(self.bus, self.enrich_queue, config.enrich_timeout)
        self.tokens = TokenService(self.repository, self.clients, self.waiter, config.networks[0].name)
        self.subscriptions = build_subscriptions(self.bus, self.repository)

        self.ingress = IngressService(self._build_partitions())
        if config.ingress_enabled:
            await self.ingress.start()

        self.started = True
        logger.info("Services started")

    def _build_partitions(self) -> List[IngressPartition]:
        config = self.settings
        job_options = JobOptions(
            delay=config.ingress_delay,
            backoff=config.ingress_backoff,
            backoff_strategy=config.ingress_backoff_strategy,
            max_attempts=config.ingress_max_attempts,
        )
        upserter = Upserter(
            RecordStore(self.database, Order.__table__),
            RecordStore(self.database, Token.__table__),
        )
        notifier = ChangeNotifier(self.bus, self.enrich_queue)
        cursors = CursorStore(self.database)

        return [
            IngressPartition(
                network=name,
                client=client,
                queue=JobQueue(
                    self.redis.client,
                    f"ingress:{name}",
                    prefix=config.redis_prefix,
                    lock_duration=config.ingress_lock_duration,
                ),
                cursors=cursors,
                upserter=upserter,
                notifier=notifier,
                job_options=job_options,
                page_size=config.ingress_page_size,
                poll_interval=config.ingress_poll_interval,
            )
            for name, client in self.clients.items()
        ]

    async def stop(self) -> None:
        logger.info("Stopping services")
        self.started = False

        if self.ingress:
            await self.ingress.stop()
        for network in self.networks.values():
            await network.close()
        for client in self.clients.values():
            await client.close()
        self.clients = {}
        if self.bus:
            await self.bus.close()
        await self.redis.disconnect()
        await self.database.close()

        logger.info("Services stopped")

    async def health_check(self) -> Dict[str, Any]:
        redis = await self.redis.health_check()
        return {
            "database": "healthy" if await self.database.health_check() else "unhealthy",
            "redis": redis["status"],
            "api": "healthy",
        }


def create_application() -> FastAPI:
    """Application factory for uvicorn."""
    setup_logging()
    return create_app(Services(settings))


def run() -> None:
    uvicorn.run(
        "market_ingress.main:create_application",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development and settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
