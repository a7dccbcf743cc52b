"""
Enrichment dispatch and change notification for a persisted batch.
"""

import asyncio
from typing import Any, Dict, List, Sequence

from market_ingress.core.logging import get_logger
from market_ingress.pubsub.bus import ChangeBus
from market_ingress.pubsub.topics import ORDER_UPDATED
from market_ingress.queue.enrich import EnrichQueue
from market_ingress.utils.serialization import jsonable

from .types import DispatchResult, UpsertResult

logger = get_logger(__name__)


class ChangeNotifier:
    """
    Routes every batch index to exactly one downstream effect.

    Newly inserted records are sent to enrichment (whose completion
    announces them later); records that already existed are published as
    ``order_updated``. Failed records produce nothing.
    """

    def __init__(self, bus: ChangeBus, enrich_queue: EnrichQueue):
        self.bus = bus
        self.enrich_queue = enrich_queue
        self.logger = logger.bind(service="change_notifier")

    async def dispatch(
        self,
        orders: Sequence[Dict[str, Any]],
        tokens: Sequence[Dict[str, Any]],
        result: UpsertResult,
    ) -> DispatchResult:
        inserted = sorted(result.inserted)
        enrich_items = [{"order": orders[i], "token": tokens[i]} for i in inserted]
        events: List[Dict[str, Any]] = [
            jsonable({**orders[i], "token": tokens[i]})
            for i in range(len(orders))
            if i not in result.inserted and i not in result.failed
        ]

        tasks = [self.bus.publish(ORDER_UPDATED, event) for event in events]
        if enrich_items:
            tasks.append(self.enrich_queue.enqueue(*enrich_items))
        await asyncio.gather(*tasks)

        self.logger.debug(
            "Batch dispatched",
            enqueued=len(enrich_items),
            published=len(events),
            skipped=len(result.failed)
        )
        return DispatchResult(enqueued=len(enrich_items), published=len(events))
