"""
In-memory stand-ins for the indexer, queues, bus and JSON-RPC probes.
"""

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence

from market_ingress.pubsub.bus import ChangeBus
from market_ingress.queue.job_queue import Job, JobOptions
from market_ingress.services.network import Capability


def wire_order(
    order_id: str,
    last_block: int,
    token_id: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    token_id = token_id or f"0xcontract-{order_id}"
    record = {
        "id": order_id,
        "lastBlock": str(last_block),
        "createdAt": "1700000000",
        "kind": "DIRECT",
        "open": True,
        "openFrom": None,
        "openTo": None,
        "maker": "0xmaker",
        "taker": None,
        "currency": "0x0000000000000000000000000000000000000000",
        "price": "1000",
        "priceIsMinimum": False,
        "paidAmount": None,
        "token": {
            "id": token_id,
            "createdAt": "1690000000",
            "contract": "0xcontract",
            "tokenId": order_id,
            "owner": "0xowner",
            "uri": None,
        },
    }
    record.update(fields)
    return record


class FakeIndexerClient:
    """Serves order pages in sequence and records each request."""

    def __init__(self, pages: Sequence[List[Dict[str, Any]]] = (), tokens: Sequence[Dict[str, Any]] = (), network: str = "ethereum"):
        self.pages = list(pages)
        self.tokens = list(tokens)
        self.network = network
        self.requests: List[Dict[str, Any]] = []
        self.token_requests: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def get_orders(self, last_block_gt, skip, first):
        self.requests.append({"last_block_gt": last_block_gt, "skip": skip, "first": first})
        if self.error is not None:
            raise self.error
        index = len(self.requests) - 1
        return self.pages[index] if index < len(self.pages) else []

    async def get_tokens(self, where=None, skip=0, first=100):
        self.token_requests.append({"where": where, "skip": skip, "first": first})
        tokens = self.tokens
        if where and "id" in where:
            tokens = [token for token in tokens if token["id"] == where["id"]]
        return tokens[skip:skip + first]


class FakeJobQueue:
    """Job queue without timing: every job is immediately eligible."""

    def __init__(self, name: str = "ingress:ethereum", lock_duration: float = 300.0):
        self.name = name
        self.lock_duration = lock_duration
        self.waiting: List[Job] = []
        self.active: List[Job] = []
        self.added: List[Job] = []
        self.completed: List[Job] = []
        self.failed: List[Job] = []

    async def add(self, name, data, options=None):
        job = Job(id=uuid.uuid4().hex, name=name, data=data, options=options or JobOptions())
        self.waiting.append(job)
        self.added.append(job)
        return job

    async def count(self):
        return len(self.waiting) + len(self.active)

    async def claim(self):
        await asyncio.sleep(0)
        if not self.waiting:
            return None
        job = self.waiting.pop(0)
        self.active.append(job)
        return job

    async def renew(self, job):
        pass

    async def complete(self, job):
        self.active.remove(job)
        self.completed.append(job)

    async def fail(self, job, error):
        job.attempts_made += 1
        job.failed_reason = error
        self.active.remove(job)
        self.failed.append(job)
        max_attempts = job.options.max_attempts
        if max_attempts is not None and job.attempts_made >= max_attempts:
            return False
        self.waiting.append(job)
        return True

    async def recover_stalled(self):
        return 0


class FakeEnrichQueue:
    def __init__(self):
        self.items: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def enqueue(self, *items):
        if self.error is not None:
            raise self.error
        self.items.extend(items)
        return len(self.items)


class RecordingBus(ChangeBus):
    """Local bus that also remembers every publish."""

    def __init__(self):
        super().__init__()
        self.published: List[tuple] = []

    async def publish(self, topic, payload):
        self.published.append((topic, payload))
        await super().publish(topic, payload)


class FakeNetwork:
    """Answers probes from a table keyed by interface id."""

    def __init__(self, answers: Dict[str, Capability], name: str = "ethereum", delay: float = 0.0):
        self.name = name
        self.answers = answers
        self.delay = delay
        self.calls: List[tuple] = []

    async def probe(self, address, interface_id):
        self.calls.append((address, interface_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.answers.get(interface_id, Capability.UNSUPPORTED)
