"""Redis list implementation of MessageQueue.

Publishers RPUSH onto the list, the consumer BLPOPs from it, so stages can
run as separate processes. Redis gives no end-of-stream signal across
processes; ``close`` only stops this process's consumer loop.
"""

from __future__ import annotations

from typing import AsyncIterator

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from fare_estimator.core.errors import TransportError

log = structlog.get_logger()


class RedisQueue:
    """MessageQueue backed by a Redis list."""

    def __init__(self, client: redis.Redis, name: str, poll_timeout: float = 1.0) -> None:
        self._client = client
        self.name = name
        self._poll_timeout = poll_timeout
        self._closed = False
        self._depth = 0

    @classmethod
    def from_url(cls, url: str, name: str, poll_timeout: float = 1.0) -> RedisQueue:
        return cls(redis.Redis.from_url(url), name, poll_timeout)

    async def ping(self) -> None:
        """Fail fast at start-up when Redis is unreachable."""
        try:
            await self._client.ping()
        except RedisError as exc:
            raise TransportError(f"redis unreachable for queue {self.name!r}: {exc}") from exc

    async def publish(self, body: bytes) -> None:
        if self._closed:
            raise TransportError(f"queue {self.name!r} is closed", details={"queue": self.name})
        try:
            self._depth = await self._client.rpush(self.name, body)
        except RedisError as exc:
            raise TransportError(f"publish to {self.name!r} failed: {exc}",
                                 details={"queue": self.name}) from exc

    async def consume(self) -> AsyncIterator[bytes]:
        while not self._closed:
            try:
                item = await self._client.blpop([self.name], timeout=self._poll_timeout)
            except RedisError as exc:
                raise TransportError(f"consume from {self.name!r} failed: {exc}",
                                     details={"queue": self.name}) from exc
            if item is None:
                continue
            _, body = item
            yield body

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
        log.info("redis_queue_closed", queue=self.name)

    def qsize(self) -> int:
        # Last length reported by RPUSH; a cheap estimate, not a live count.
        return self._depth
