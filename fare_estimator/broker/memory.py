"""In-process asyncio implementation of MessageQueue.

Used for single-process runs and as the deterministic transport in tests.
Queues are bounded, so a slow consumer pushes back on its publisher.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from fare_estimator.core.errors import TransportError

# Marks the end of the stream for consumers.
_CLOSED = None


class InMemoryQueue:
    """MessageQueue backed by asyncio.Queue. Supports a single consumer."""

    def __init__(self, name: str = "default", max_size: int = 10_000) -> None:
        self.name = name
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, body: bytes) -> None:
        if self._closed:
            raise TransportError(f"queue {self.name!r} is closed", details={"queue": self.name})
        await self._queue.put(body)

    async def consume(self) -> AsyncIterator[bytes]:
        while True:
            body = await self._queue.get()
            if body is _CLOSED:
                return
            yield body

    async def close(self) -> None:
        """Stop accepting messages; the consumer ends after the backlog."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    def qsize(self) -> int:
        return self._queue.qsize()


class InMemoryBroker:
    """Hands out named in-memory queues, creating them on first use."""

    def __init__(self, max_size: int = 10_000) -> None:
        self._max_size = max_size
        self._queues: dict[str, InMemoryQueue] = {}

    def queue(self, name: str) -> InMemoryQueue:
        if name not in self._queues:
            self._queues[name] = InMemoryQueue(name=name, max_size=self._max_size)
        return self._queues[name]

    async def close(self) -> None:
        for queue in self._queues.values():
            await queue.close()
