"""Tests for the in-process message transport."""

from __future__ import annotations

import asyncio

import pytest

from fare_estimator.broker.memory import InMemoryBroker, InMemoryQueue
from fare_estimator.core.errors import TransportError


async def collect(queue: InMemoryQueue) -> list[bytes]:
    return [body async for body in queue.consume()]


@pytest.mark.asyncio
async def test_messages_delivered_in_order_then_stream_ends():
    queue = InMemoryQueue("trips")
    for body in (b"a", b"b", b"c"):
        await queue.publish(body)
    assert queue.qsize() == 3

    await queue.close()
    assert await collect(queue) == [b"a", b"b", b"c"]


@pytest.mark.asyncio
async def test_publish_after_close_fails():
    queue = InMemoryQueue("trips")
    await queue.close()
    assert queue.closed
    with pytest.raises(TransportError):
        await queue.publish(b"late")


@pytest.mark.asyncio
async def test_close_is_idempotent():
    queue = InMemoryQueue("trips")
    await queue.close()
    await queue.close()
    assert await collect(queue) == []


@pytest.mark.asyncio
async def test_bounded_queue_applies_backpressure():
    queue = InMemoryQueue("fares", max_size=1)
    await queue.publish(b"first")

    blocked = asyncio.create_task(queue.publish(b"second"))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    consumer = queue.consume()
    assert await consumer.__anext__() == b"first"
    await asyncio.wait_for(blocked, timeout=1)
    assert await consumer.__anext__() == b"second"


@pytest.mark.asyncio
async def test_broker_reuses_named_queues():
    broker = InMemoryBroker(max_size=5)
    assert broker.queue("trips") is broker.queue("trips")
    assert broker.queue("trips") is not broker.queue("fares")

    await broker.close()
    assert broker.queue("trips").closed
    assert broker.queue("fares").closed
