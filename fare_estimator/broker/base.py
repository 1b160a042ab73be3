"""Transport interface (port) for trip and fare messages."""

from __future__ import annotations

from typing import AsyncIterator, Protocol


class MessageQueue(Protocol):
    """Port: a named queue of opaque message bodies.

    ``publish`` raises TransportError when the message was not accepted.
    ``consume`` yields bodies in arrival order until the queue is closed.
    """

    async def publish(self, body: bytes) -> None: ...

    def consume(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...

    def qsize(self) -> int: ...
