"""Storage interface (port) for persisting fare records."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from fare_estimator.core.models import FareRecord


class FareSink(Protocol):
    """Port: persists batches of fare records to durable storage.

    ``write_batch`` raises SinkWriteError when the batch was not persisted.
    """

    async def write_batch(self, records: list[FareRecord]) -> None: ...

    def close(self) -> None: ...
