"""
Paged polling of the indexer from a cursor.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from market_ingress.core.exceptions import OrderingViolationError
from market_ingress.core.logging import get_logger

from .client import IndexerClient

logger = get_logger(__name__)

PageProcessor = Callable[[List[Dict[str, Any]]], Awaitable[Any]]


class BatchPoller:
    """
    Reads every order past a cursor, one page at a time.

    Pages are requested ascending by ``lastBlock`` with a growing offset and
    handed to ``process`` as they arrive. Polling stops at the first page
    shorter than the page size.
    """

    def __init__(self, client: IndexerClient, process: PageProcessor, page_size: int = 1000):
        self.client = client
        self.process = process
        self.page_size = page_size
        self.logger = logger.bind(service="batch_poller", network=client.network)

    async def poll(self, last_block_gt: Optional[str]) -> Optional[str]:
        """Process all pages; returns the last ``lastBlock`` seen, or the input cursor."""
        skip = 0
        last_block: Optional[str] = None
        previous = last_block_gt

        while True:
            page = await self.client.get_orders(last_block_gt, skip, self.page_size)

            if page:
                for record in page:
                    current = record["lastBlock"]
                    if previous is not None and int(current) < int(previous):
                        raise OrderingViolationError(previous, current, {"skip": skip, "id": record.get("id")})
                    previous = current

                await self.process(page)
                last_block = page[-1]["lastBlock"]
                skip += self.page_size

            if len(page) < self.page_size:
                break

        return last_block if last_block is not None else last_block_gt
