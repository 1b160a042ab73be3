"""Writer stage — consumes fares into the batch buffer and persists them.

Flushes happen on batch size (inside BatchBuffer.add), on a timer, and a
final drain when the fare queue closes or the stage is cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.codec import decode_fare
from fare_estimator.core.errors import SerializationError, SinkWriteError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.broker.base import MessageQueue
    from fare_estimator.core.batch import BatchBuffer
    from fare_estimator.core.stats import PipelineStats


class FareWriter:
    """Moves fare messages from the transport into a BatchBuffer."""

    def __init__(
        self,
        buffer: BatchBuffer,
        fare_queue: MessageQueue,
        stats: PipelineStats,
        flush_interval_seconds: float = 5.0,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._buffer = buffer
        self._queue = fare_queue
        self._stats = stats
        self._flush_interval = flush_interval_seconds
        self._log = (logger or structlog.get_logger()).bind(component="fare_writer")

    async def run(self) -> int:
        """Consume until the fare queue closes. Returns the number of fares buffered."""
        received = 0
        timer = asyncio.create_task(self._buffer.run_timer(self._flush_interval),
                                    name="batch-timer")
        self._log.info("fare_writer_started", batch_size=self._buffer.batch_size,
                       flush_interval_s=self._flush_interval)
        try:
            async for body in self._queue.consume():
                try:
                    record = decode_fare(body)
                except SerializationError:
                    self._log.warning("fare_decode_failed", exc_info=True)
                    self._stats.record_serialization_error()
                    continue

                received += 1
                self._stats.update_queue_depth("fares", self._queue.qsize())
                try:
                    await self._buffer.add(record)
                except SinkWriteError:
                    # Logged by the buffer; the batch is gone, keep consuming.
                    continue
        finally:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
            await self._drain()
            self._log.info("fare_writer_finished", fares_received=received)
        return received

    async def _drain(self) -> None:
        try:
            await self._buffer.drain()
        except SinkWriteError:
            self._log.error("final_drain_failed")
