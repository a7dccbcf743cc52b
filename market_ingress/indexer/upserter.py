"""
Concurrent persistence of projected orders and tokens.
"""

import asyncio
from typing import Any, Dict, Sequence

from market_ingress.repositories.records import RecordStore

from .types import UpsertResult


class Upserter:
    """Writes a batch of orders and their tokens as two unordered bulk upserts."""

    def __init__(self, orders: RecordStore, tokens: RecordStore):
        self.orders = orders
        self.tokens = tokens

    async def upsert(
        self,
        orders: Sequence[Dict[str, Any]],
        tokens: Sequence[Dict[str, Any]],
    ) -> UpsertResult:
        """
        Upsert both collections and classify each batch index.

        An index counts as inserted when its token was new: a new token
        needs enrichment. An index failed when either of its writes failed.
        """
        order_report, token_report = await asyncio.gather(
            self.orders.bulk_upsert(orders),
            self.tokens.bulk_upsert(tokens),
        )
        return UpsertResult(
            inserted=token_report.inserted,
            failed=(order_report.failed | token_report.failed) - token_report.inserted,
        )
