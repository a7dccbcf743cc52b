"""
Tests for the Redis job queue, enrichment queue and change bus, run against
an in-process Redis server with Lua scripting.
"""

import asyncio
import json
import time
from datetime import datetime, timezone

import pytest
from fakeredis import FakeAsyncRedis

from market_ingress.pubsub.redis_bus import RedisChangeBus
from market_ingress.queue.enrich import EnrichQueue
from market_ingress.queue.job_queue import JobOptions, JobQueue
from market_ingress.queue.worker import Worker

PREFIX = "test:"


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate() and loop.time() < deadline:
        await asyncio.sleep(0.01)
    assert await predicate()


@pytest.fixture
def queue(redis):
    return JobQueue(redis, "ingress", prefix=PREFIX)


async def test_claim_leases_and_complete_removes(queue, redis):
    added = await queue.add("ingress", {"network": "ethereum"})

    job = await queue.claim()

    assert job == added
    assert await queue.claim() is None
    assert await redis.zscore(queue.active_key, job.id) > time.time()
    assert await queue.count() == 1

    await queue.complete(job)

    assert await queue.count() == 0
    assert await redis.hlen(queue.jobs_key) == 0


async def test_delayed_job_is_claimable_only_after_its_delay(queue):
    await queue.add("ingress", {}, JobOptions(delay=0.1))

    assert await queue.claim() is None
    await asyncio.sleep(0.15)
    assert await queue.claim() is not None


async def test_failed_job_is_rescheduled_after_backoff(queue):
    await queue.add("ingress", {}, JobOptions(backoff=0.1))
    job = await queue.claim()

    assert await queue.fail(job, "indexer down") is True
    assert await queue.claim() is None

    await asyncio.sleep(0.15)
    retried = await queue.claim()

    assert retried.id == job.id
    assert retried.attempts_made == 1
    assert retried.failed_reason == "indexer down"


async def test_exponential_backoff_sets_the_next_eligibility(queue, redis):
    await queue.add("ingress", {}, JobOptions(backoff=10.0, backoff_strategy="exponential"))
    job = await queue.claim()
    await queue.fail(job, "first")

    retried_at = await redis.zscore(queue.delayed_key, job.id)
    assert 9.0 < retried_at - time.time() <= 10.0

    await redis.zadd(queue.delayed_key, {job.id: 0})
    job = await queue.claim()
    await queue.fail(job, "second")

    retried_at = await redis.zscore(queue.delayed_key, job.id)
    assert 19.0 < retried_at - time.time() <= 20.0


async def test_job_is_dead_lettered_after_max_attempts(queue):
    await queue.add("ingress", {"network": "ethereum"}, JobOptions(backoff=0.0, max_attempts=2))

    job = await queue.claim()
    assert await queue.fail(job, "first") is True
    job = await queue.claim()
    assert await queue.fail(job, "second") is False

    assert await queue.claim() is None
    assert await queue.count() == 0
    (dead,) = await queue.dead_letters()
    assert dead.id == job.id
    assert dead.attempts_made == 2
    assert dead.failed_reason == "second"
    assert dead.data == {"network": "ethereum"}


async def test_expired_lease_is_recovered(redis):
    queue = JobQueue(redis, "ingress", prefix=PREFIX, lock_duration=0.05)
    await queue.add("ingress", {})
    job = await queue.claim()

    assert await queue.recover_stalled() == 0
    await asyncio.sleep(0.1)
    assert await queue.recover_stalled() == 1

    recovered = await queue.claim()
    assert recovered.id == job.id
    assert recovered.attempts_made == 0


async def test_renewed_lease_is_not_recovered(redis):
    queue = JobQueue(redis, "ingress", prefix=PREFIX, lock_duration=0.1)
    await queue.add("ingress", {})
    job = await queue.claim()

    await asyncio.sleep(0.06)
    await queue.renew(job)
    await asyncio.sleep(0.06)

    assert await queue.recover_stalled() == 0


async def test_claim_drops_a_job_without_payload(queue, redis):
    job = await queue.add("ingress", {})
    await redis.hdel(queue.jobs_key, job.id)

    assert await queue.claim() is None
    assert await queue.count() == 0


async def test_obliterate_removes_every_key(queue, redis):
    await queue.add("ingress", {}, JobOptions(max_attempts=1))
    await queue.fail(await queue.claim(), "boom")
    await queue.add("ingress", {})

    await queue.obliterate()

    assert await redis.keys(f"{PREFIX}*") == []


async def test_worker_drains_a_redis_queue(queue):
    seen = []

    async def processor(job):
        seen.append(job.data["n"])

    for n in range(3):
        await queue.add("ingress", {"n": n})
    worker = Worker(queue, processor, poll_interval=0.01)

    await worker.start()

    async def drained():
        return await queue.count() == 0

    await wait_until(drained)
    await worker.close()

    assert seen == [0, 1, 2]


async def test_enrich_queue_appends_json_requests(redis):
    queue = EnrichQueue(redis, prefix=PREFIX)

    assert await queue.enqueue() == 0
    length = await queue.enqueue(
        {"id": "0xabc-1", "network": "ethereum"},
        {"id": "0xabc-2", "network": "polygon", "at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
    )

    assert length == 2
    assert await queue.length() == 2
    raw = await redis.lrange(f"{PREFIX}enrich", 0, -1)
    assert [json.loads(item)["id"] for item in raw] == ["0xabc-1", "0xabc-2"]
    assert json.loads(raw[1])["at"].startswith("2024-01-01T00:00:00")


@pytest.fixture
async def bus_pair(redis_server):
    clients = [FakeAsyncRedis(server=redis_server, decode_responses=True) for _ in range(2)]
    buses = [RedisChangeBus(client, prefix=PREFIX, read_timeout=0.05) for client in clients]
    for change_bus in buses:
        await change_bus.start()
    yield buses
    for change_bus in buses:
        await change_bus.close()
    for client in clients:
        await client.aclose()


async def test_publish_reaches_a_subscriber_on_another_bus(bus_pair):
    publisher, listener = bus_pair
    subscription = await listener.subscribe("order_updated").open()
    other = await listener.subscribe("token_updated").open()

    await publisher.publish("order_updated", {"id": "a", "network": "ethereum"})

    assert await asyncio.wait_for(subscription.get(), 2.0) == {"id": "a", "network": "ethereum"}
    assert other._queue.empty()


async def test_undecodable_messages_are_dropped(bus_pair, redis):
    publisher, listener = bus_pair
    subscription = await listener.subscribe("order_updated").open()

    await redis.publish(f"{PREFIX}order_updated", "not json")
    await publisher.publish("order_updated", {"id": "b"})

    assert await asyncio.wait_for(subscription.get(), 2.0) == {"id": "b"}


async def test_last_unsubscribe_releases_the_channel(bus_pair, redis):
    _, listener = bus_pair
    subscription = await listener.subscribe("order_updated").open()
    assert await redis.publish(f"{PREFIX}order_updated", json.dumps({"id": "c"})) == 1

    await subscription.close()

    assert await redis.publish(f"{PREFIX}order_updated", json.dumps({"id": "d"})) == 0
