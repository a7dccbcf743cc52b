"""
Token lookups that combine the indexer, the store and enrichment.
"""

from typing import Any, Dict, List, Mapping, Optional

from market_ingress.core.exceptions import NetworkNotFoundError
from market_ingress.core.logging import get_logger
from market_ingress.indexer.client import IndexerClient
from market_ingress.indexer.projector import build_token
from market_ingress.repositories.market import MarketRepository
from market_ingress.utils.serialization import jsonable

from .enrichment import EnrichmentWaiter

logger = get_logger(__name__)


class TokenService:
    """Serves tokens with metadata, waiting briefly for enrichment when it is missing."""

    def __init__(
        self,
        repository: MarketRepository,
        clients: Mapping[str, IndexerClient],
        waiter: EnrichmentWaiter,
        default_network: str,
    ):
        self.repository = repository
        self.clients = clients
        self.waiter = waiter
        self.default_network = default_network
        self.logger = logger.bind(service="token_service")

    def _network(self, network: Optional[str]) -> str:
        name = network or self.default_network
        if name not in self.clients:
            raise NetworkNotFoundError(name)
        return name

    async def get_token(self, token_id: str, network: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """A stored or indexed token of one network; None when neither knows the id."""
        name = self._network(network)
        token = await self.repository.get_token(name, token_id)

        if token is not None:
            if token.get("metadata") is not None:
                return token
        else:
            found = await self.clients[name].get_tokens(where={"id": token_id}, first=1)
            if not found:
                return None
            token = jsonable(build_token(found[0], name))

        await self.waiter.wait([token])
        return token

    async def get_tokens(
        self,
        where: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        first: int = 100,
        network: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Indexer tokens merged with stored metadata."""
        name = self._network(network)
        found = await self.clients[name].get_tokens(where=where, skip=skip, first=first)
        if not found:
            return []

        items = [jsonable(build_token(raw, name)) for raw in found]
        enriched = await self.repository.get_enriched_tokens(name, (item["id"] for item in items))

        tokens: List[Dict[str, Any]] = []
        missing: List[Dict[str, Any]] = []
        for item in items:
            stored = enriched.get(item["id"])
            token = {**item, **(stored or {})}
            tokens.append(token)
            if stored is None:
                missing.append(token)

        if missing:
            self.logger.debug("Waiting for enrichment", tokens=len(tokens), missing=len(missing))
            await self.waiter.wait(missing)

        return tokens
