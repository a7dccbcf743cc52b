"""
Request-path wait for token enrichment.
"""

import asyncio
from typing import Any, Dict, List, Sequence

from market_ingress.core.exceptions import QueueError
from market_ingress.core.logging import get_logger
from market_ingress.pubsub.bus import ChangeBus, Subscription
from market_ingress.pubsub.topics import TOKEN_UPDATED
from market_ingress.queue.enrich import EnrichQueue

logger = get_logger(__name__)


class EnrichmentWaiter:
    """
    Requests enrichment for tokens and waits, up to a timeout, for the
    ``token_updated`` events that complete them.

    Arrived fields are merged into the given token dicts in place. On
    timeout the tokens are returned as far as they got; missing metadata is
    a normal outcome, not an error.
    """

    def __init__(self, bus: ChangeBus, enrich_queue: EnrichQueue, timeout: float = 10.0):
        self.bus = bus
        self.enrich_queue = enrich_queue
        self.timeout = timeout
        self.logger = logger.bind(service="enrichment_waiter")

    async def wait(self, tokens: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        pending: Dict[str, List[Dict[str, Any]]] = {}
        for token in tokens:
            pending.setdefault(token["id"], []).append(token)
        if not pending:
            return list(tokens)

        # Subscribe before enqueueing so a fast completion is not missed
        async with self.bus.subscribe(TOKEN_UPDATED) as subscription:
            try:
                await asyncio.wait_for(self._enrich(subscription, tokens, pending), self.timeout)
            except asyncio.TimeoutError:
                self.logger.debug("Enrichment wait timed out", requested=len(tokens), missing=len(pending))
            except QueueError as e:
                self.logger.warning("Enrichment request failed", error=e.message, details=e.details)

        return list(tokens)

    async def _enrich(
        self,
        subscription: Subscription,
        tokens: Sequence[Dict[str, Any]],
        pending: Dict[str, List[Dict[str, Any]]],
    ) -> None:
        await self.enrich_queue.enqueue(*({"token": dict(token)} for token in tokens))

        async for payload in subscription:
            token_id = payload.get("id")
            waiting = pending.get(token_id)
            if not waiting:
                continue

            # The same id can exist on several networks
            network = payload.get("network")
            arrived = [t for t in waiting if network is None or t.get("network") in (None, network)]
            if not arrived:
                continue
            for token in arrived:
                token.update(payload)

            still_waiting = [t for t in waiting if all(t is not a for a in arrived)]
            if still_waiting:
                pending[token_id] = still_waiting
            else:
                del pending[token_id]
            if not pending:
                return
