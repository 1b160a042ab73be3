"""Tests for the Redis list transport, against an in-process fake client."""

from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from fare_estimator.broker.redis_queue import RedisQueue
from fare_estimator.core.errors import TransportError


class FakeRedis:
    """Just enough of redis.asyncio.Redis for RedisQueue: lists, RPUSH, BLPOP."""

    def __init__(self, fail: bool = False) -> None:
        self.lists: dict[str, list[bytes]] = {}
        self.fail = fail
        self.closed = False
        self.empty_polls = 0

    async def ping(self) -> bool:
        if self.fail:
            raise RedisConnectionError("connection refused")
        return True

    async def rpush(self, name: str, body: bytes) -> int:
        if self.fail:
            raise RedisConnectionError("connection refused")
        items = self.lists.setdefault(name, [])
        items.append(body)
        return len(items)

    async def blpop(self, keys: list[str], timeout: float = 0):
        if self.fail:
            raise RedisConnectionError("connection reset")
        for key in keys:
            items = self.lists.get(key)
            if items:
                return key.encode(), items.pop(0)
        # Nothing queued: behave like a poll timeout.
        self.empty_polls += 1
        await asyncio.sleep(0.001)
        return None

    async def aclose(self) -> None:
        self.closed = True


async def wait_for(condition, timeout: float = 2.0) -> None:
    for _ in range(int(timeout / 0.005)):
        if condition():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not met")


@pytest.mark.asyncio
async def test_publish_then_consume_in_order():
    client = FakeRedis()
    queue = RedisQueue(client, "delivery-trips", poll_timeout=0.01)
    await queue.publish(b"one")
    await queue.publish(b"two")
    assert queue.qsize() == 2
    assert client.lists["delivery-trips"] == [b"one", b"two"]

    received: list[bytes] = []

    async def consume():
        async for body in queue.consume():
            received.append(body)

    task = asyncio.create_task(consume())
    await wait_for(lambda: len(received) == 2)
    assert received == [b"one", b"two"]

    # Empty polls keep the consumer waiting rather than ending it.
    await wait_for(lambda: client.empty_polls > 0)
    assert not task.done()

    await queue.close()
    await asyncio.wait_for(task, timeout=2)
    assert client.closed


@pytest.mark.asyncio
async def test_publish_error_becomes_transport_error():
    queue = RedisQueue(FakeRedis(fail=True), "delivery-fares")
    with pytest.raises(TransportError) as exc_info:
        await queue.publish(b"fare")
    assert exc_info.value.details == {"queue": "delivery-fares"}


@pytest.mark.asyncio
async def test_consume_error_becomes_transport_error():
    queue = RedisQueue(FakeRedis(fail=True), "delivery-trips")
    with pytest.raises(TransportError):
        async for _ in queue.consume():
            pass


@pytest.mark.asyncio
async def test_ping_failure_becomes_transport_error():
    with pytest.raises(TransportError):
        await RedisQueue(FakeRedis(fail=True), "delivery-trips").ping()


@pytest.mark.asyncio
async def test_closed_queue_rejects_publish_and_closes_once():
    client = FakeRedis()
    queue = RedisQueue(client, "delivery-trips")
    await queue.close()
    await queue.close()
    assert client.closed
    with pytest.raises(TransportError):
        await queue.publish(b"late")
    assert [body async for body in queue.consume()] == []
