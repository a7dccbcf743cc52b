"""
Tests for the in-process change bus.
"""

import asyncio

import pytest


async def test_publish_fans_out_to_every_open_subscription(bus):
    first = await bus.subscribe("order_updated").open()
    second = await bus.subscribe("order_updated").open()
    other = await bus.subscribe("token_updated").open()

    await bus.publish("order_updated", {"id": "a"})

    assert await first.get() == {"id": "a"}
    assert await second.get() == {"id": "a"}
    assert other._queue.empty()


async def test_unopened_subscription_receives_nothing(bus):
    subscription = bus.subscribe("order_updated")

    assert bus.dispatch("order_updated", {"id": "a"}) == 0
    await subscription.open()
    await bus.publish("order_updated", {"id": "b"})

    assert await subscription.get() == {"id": "b"}


async def test_close_is_idempotent_and_detaches(bus):
    subscription = await bus.subscribe("order_updated").open()
    assert bus.subscriber_count("order_updated") == 1

    await subscription.close()
    await subscription.close()

    assert bus.subscriber_count("order_updated") == 0
    assert subscription.closed


async def test_close_wakes_a_pending_reader(bus):
    subscription = await bus.subscribe("order_updated").open()
    reader = asyncio.create_task(subscription.get())
    await asyncio.sleep(0)

    await subscription.close()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(reader, 1.0)


async def test_no_delivery_after_close(bus):
    subscription = await bus.subscribe("order_updated").open()
    await subscription.close()

    await bus.publish("order_updated", {"id": "late"})

    with pytest.raises(StopAsyncIteration):
        await subscription.get()


async def test_reopening_a_closed_subscription_fails(bus):
    subscription = bus.subscribe("order_updated")
    await subscription.close()

    with pytest.raises(RuntimeError):
        await subscription.open()


async def test_async_iteration_ends_when_closed(bus):
    received = []

    async with bus.subscribe("order_updated") as subscription:
        await bus.publish("order_updated", 1)
        await bus.publish("order_updated", 2)

        async def consume():
            async for payload in subscription:
                received.append(payload)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
    await asyncio.wait_for(consumer, 1.0)

    assert received == [1, 2]
    assert bus.subscriber_count("order_updated") == 0


async def test_bus_close_releases_all_subscriptions(bus):
    subscriptions = [await bus.subscribe(topic).open() for topic in ("a", "a", "b")]

    await bus.close()

    assert all(s.closed for s in subscriptions)
    assert bus.subscriber_count("a") == bus.subscriber_count("b") == 0
