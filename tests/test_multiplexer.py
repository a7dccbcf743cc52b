"""
Tests for snapshot-then-live subscription streams.
"""

import asyncio

import pytest

from market_ingress.subscriptions.multiplexer import Multiplexer, Restriction, StreamState

TOPIC = "order_updated"


def by_network(context):
    return Restriction(key_of=lambda payload: payload.get("network"), keys=set(context.get("networks", ())))


def by_maker(payload, context):
    return "maker" not in context or payload.get("maker") == context["maker"]


def snapshot_of(*batches):
    async def init(context):
        for batch in batches:
            yield batch
    return init


async def next_batch(stream):
    return await asyncio.wait_for(stream.__anext__(), 1.0)


async def test_snapshot_then_live_events_in_order(bus):
    multiplexer = Multiplexer(bus, TOPIC, init=snapshot_of([{"id": "A", "network": "x"}, {"id": "B", "network": "x"}]),
                              restrict=by_network)

    async with multiplexer.subscribe({}) as stream:
        assert await next_batch(stream) == [{"id": "A", "network": "x"}, {"id": "B", "network": "x"}]

        await bus.publish(TOPIC, {"id": "C", "network": "x"})
        await bus.publish(TOPIC, {"id": "D", "network": "y"})
        await bus.publish(TOPIC, {"id": "E", "network": "x"})

        assert await next_batch(stream) == [{"id": "C", "network": "x"}]
        assert await next_batch(stream) == [{"id": "E", "network": "x"}]


async def test_event_published_during_snapshot_is_not_lost(bus):
    async def init(context):
        await bus.publish(TOPIC, {"id": "racing"})
        yield [{"id": "old"}]

    async with Multiplexer(bus, TOPIC, init=init).subscribe({}) as stream:
        assert await next_batch(stream) == [{"id": "old"}]
        assert await next_batch(stream) == [{"id": "racing"}]


async def test_first_live_payload_fixes_an_empty_restriction(bus):
    async with Multiplexer(bus, TOPIC, restrict=by_network).subscribe({}) as stream:
        await bus.publish(TOPIC, {"id": "1", "network": "y"})
        await bus.publish(TOPIC, {"id": "2", "network": "x"})
        await bus.publish(TOPIC, {"id": "3", "network": "y"})

        assert await next_batch(stream) == [{"id": "1", "network": "y"}]
        assert await next_batch(stream) == [{"id": "3", "network": "y"}]


async def test_restrictions_are_isolated_between_streams(bus):
    multiplexer = Multiplexer(bus, TOPIC, restrict=by_network)

    async with multiplexer.subscribe({"networks": ["x"]}) as xs, multiplexer.subscribe({"networks": ["y"]}) as ys:
        await bus.publish(TOPIC, {"id": "1", "network": "y"})
        await bus.publish(TOPIC, {"id": "2", "network": "x"})

        assert await next_batch(xs) == [{"id": "2", "network": "x"}]
        assert await next_batch(ys) == [{"id": "1", "network": "y"}]
        assert xs.restriction.keys == {"x"}


async def test_filter_drops_non_matching_payloads(bus):
    async with Multiplexer(bus, TOPIC, filter=by_maker).subscribe({"maker": "0xa"}) as stream:
        await bus.publish(TOPIC, {"id": "1", "maker": "0xb"})
        await bus.publish(TOPIC, {"id": "2", "maker": "0xa"})

        assert await next_batch(stream) == [{"id": "2", "maker": "0xa"}]


async def test_without_snapshot_the_stream_starts_live(bus):
    multiplexer = Multiplexer(bus, TOPIC, init=snapshot_of([{"id": "old"}]))

    async with multiplexer.subscribe({}, snapshot=False) as stream:
        assert stream.state is StreamState.LIVE
        await bus.publish(TOPIC, {"id": "new"})

        assert await next_batch(stream) == [{"id": "new"}]


async def test_empty_snapshot_goes_straight_to_live(bus):
    async with Multiplexer(bus, TOPIC, init=snapshot_of()).subscribe({}) as stream:
        await bus.publish(TOPIC, {"id": "new"})

        assert await next_batch(stream) == [{"id": "new"}]
        assert stream.state is StreamState.LIVE


async def test_close_releases_bus_subscription_and_ends_iteration(bus):
    stream = Multiplexer(bus, TOPIC).subscribe({})
    await stream.open()
    assert bus.subscriber_count(TOPIC) == 1

    pending = asyncio.create_task(stream.__anext__())
    await asyncio.sleep(0)
    await stream.aclose()
    await stream.aclose()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, 1.0)
    assert bus.subscriber_count(TOPIC) == 0
    assert stream.closed


async def test_close_before_first_read_skips_snapshot(bus):
    consumed = []

    async def init(context):
        consumed.append(True)
        yield [{"id": "old"}]

    stream = Multiplexer(bus, TOPIC, init=init).subscribe({})
    await stream.aclose()

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert consumed == []
    assert bus.subscriber_count(TOPIC) == 0
