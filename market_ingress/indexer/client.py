"""
GraphQL client for the marketplace indexer.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from market_ingress.core.exceptions import IndexerError
from market_ingress.core.logging import get_logger

from .queries import GET_ORDERS, GET_TOKENS

logger = get_logger(__name__)


class IndexerClient:
    """One indexer endpoint; queries are never cached."""

    def __init__(self, url: str, timeout: float = 10.0, network: Optional[str] = None):
        self.url = url
        self.timeout = timeout
        self.network = network
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logger.bind(service="indexer_client", network=network)

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def query(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data``."""
        if self._session is None:
            raise RuntimeError("Indexer client not started. Call start() first.")

        details = {"url": self.url, "network": self.network}
        try:
            async with self._session.post(self.url, json={"query": document, "variables": variables}) as response:
                if response.status != 200:
                    text = await response.text()
                    raise IndexerError(
                        f"Indexer returned HTTP {response.status}",
                        {**details, "status": response.status, "body": text[:500]}
                    )
                body = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise IndexerError("Indexer request timed out", {**details, "timeout": self.timeout}) from e
        except aiohttp.ClientError as e:
            raise IndexerError("Indexer request failed", {**details, "error": str(e)}) from e

        if body.get("errors"):
            raise IndexerError("Indexer query failed", {**details, "errors": body["errors"]})
        return body.get("data") or {}

    async def get_orders(self, last_block_gt: Optional[str], skip: int, first: int) -> List[Dict[str, Any]]:
        """A page of orders ascending by ``lastBlock``."""
        variables: Dict[str, Any] = {"skip": skip, "first": first}
        if last_block_gt is not None:
            variables["lastBlock_gt"] = last_block_gt

        data = await self.query(GET_ORDERS, variables)
        orders = data.get("orders") or []
        self.logger.debug("Fetched orders", last_block_gt=last_block_gt, skip=skip, first=first, length=len(orders))
        return orders

    async def get_tokens(
        self,
        where: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        first: int = 100,
    ) -> List[Dict[str, Any]]:
        variables: Dict[str, Any] = {"skip": skip, "first": first}
        if where:
            variables["where"] = where

        data = await self.query(GET_TOKENS, variables)
        return data.get("tokens") or []
