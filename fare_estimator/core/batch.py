"""Batch buffer — accumulates fare records and flushes them to a sink.

A flush happens when the buffer reaches ``batch_size`` records, on every
timer tick, and once more on shutdown (``drain``). One asyncio lock covers
the append, the threshold check and the whole flush, so a size-triggered
flush and a timer-triggered flush never overlap.

Failed writes are retried with backoff. When retries run out the batch
goes to the dead-letter sink (if any), SinkWriteError is raised, and the
buffer is left empty: delivery to the primary sink is at-most-once.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.errors import SinkWriteError
from fare_estimator.core.retry import RetryConfig, with_retry

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.core.models import FareRecord
    from fare_estimator.core.stats import PipelineStats
    from fare_estimator.storage.base import FareSink
    from fare_estimator.storage.dead_letter import JsonlDeadLetterSink


class BatchBuffer:
    """Shared buffer between fare producers and a single FareSink."""

    def __init__(
        self,
        sink: FareSink,
        batch_size: int = 100,
        *,
        retry: RetryConfig | None = None,
        dead_letter: JsonlDeadLetterSink | None = None,
        stats: PipelineStats | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self._sink = sink
        self._batch_size = batch_size
        self._retry = retry or RetryConfig()
        self._dead_letter = dead_letter
        self._stats = stats
        self._log = (logger or structlog.get_logger()).bind(component="batch_buffer")

        self._lock = asyncio.Lock()
        self._pending: list[FareRecord] = []

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def __len__(self) -> int:
        return len(self._pending)

    async def add(self, record: FareRecord) -> None:
        """Append a record; flushes before returning if the batch is full."""
        async with self._lock:
            self._pending.append(record)
            if len(self._pending) >= self._batch_size:
                await self._flush_locked("size")

    async def on_timer(self) -> int:
        return await self.flush("timer")

    async def drain(self) -> int:
        """Final flush on shutdown."""
        return await self.flush("drain")

    async def flush(self, trigger: str = "manual") -> int:
        """Write pending records to the sink. Returns how many were written."""
        async with self._lock:
            return await self._flush_locked(trigger)

    async def run_timer(self, interval_seconds: float) -> None:
        """Flush every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.on_timer()
            except SinkWriteError:
                # Already logged and dead-lettered; keep ticking.
                continue

    async def _flush_locked(self, trigger: str) -> int:
        if not self._pending:
            return 0

        batch, self._pending = self._pending, []
        self._log.info("flushing_batch", trigger=trigger, batch_size=len(batch))

        try:
            await with_retry(
                lambda: self._sink.write_batch(batch),
                self._retry,
                operation_name="write_batch",
                logger=self._log,
            )
        except SinkWriteError as exc:
            dead_lettered = await self._dead_letter_batch(batch, exc)
            if self._stats is not None:
                self._stats.record_sink_error(len(batch) - dead_lettered, dead_lettered)
            self._log.error("batch_write_failed", trigger=trigger, batch_size=len(batch),
                            dead_lettered=dead_lettered, error=str(exc))
            raise SinkWriteError(
                f"batch of {len(batch)} fares was not persisted",
                records=batch,
                details={"trigger": trigger, "dead_lettered": dead_lettered},
            ) from exc

        if self._stats is not None:
            self._stats.record_flush(len(batch))
        self._log.info("batch_flushed", trigger=trigger, batch_size=len(batch))
        return len(batch)

    async def _dead_letter_batch(self, batch: list[FareRecord], exc: SinkWriteError) -> int:
        if self._dead_letter is None:
            return 0
        try:
            await self._dead_letter.write_batch(batch, reason=str(exc))
        except SinkWriteError:
            self._log.error("dead_letter_failed", batch_size=len(batch), exc_info=True)
            return 0
        return len(batch)
