"""Fare stage — consumes trips, prices them on a bounded worker pool, publishes fares.

A fixed number of worker tasks pull from a small bounded queue; when every
worker is busy and the queue is full, consumption pauses until one frees up.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.codec import decode_trip, encode_fare
from fare_estimator.core.errors import SerializationError, TransportError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.broker.base import MessageQueue
    from fare_estimator.core.fare import FareCalculator
    from fare_estimator.core.models import Trip
    from fare_estimator.core.stats import PipelineStats

# Pushed once per worker to tell it there is no more work.
_STOP = None


class FareProcessor:
    """Prices every trip of ``trip_queue`` and publishes the fare on ``fare_queue``."""

    def __init__(
        self,
        calculator: FareCalculator,
        trip_queue: MessageQueue,
        fare_queue: MessageQueue,
        stats: PipelineStats,
        concurrency: int = 8,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._calculator = calculator
        self._trips = trip_queue
        self._fares = fare_queue
        self._stats = stats
        self._concurrency = concurrency
        self._log = (logger or structlog.get_logger()).bind(component="fare_processor")

    async def run(self) -> None:
        """Consume until the trip queue closes, then wait for in-flight trips."""
        work: asyncio.Queue[Trip | None] = asyncio.Queue(maxsize=self._concurrency * 2)
        workers = [
            asyncio.create_task(self._worker(work), name=f"fare-worker-{i}")
            for i in range(self._concurrency)
        ]
        self._log.info("fare_processor_started", concurrency=self._concurrency)

        try:
            async for body in self._trips.consume():
                try:
                    trip = decode_trip(body)
                except SerializationError:
                    self._log.warning("trip_decode_failed", exc_info=True)
                    self._stats.record_serialization_error()
                    continue
                await work.put(trip)
                self._stats.update_queue_depth("trips", self._trips.qsize())
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        for _ in workers:
            await work.put(_STOP)
        await asyncio.gather(*workers)
        self._log.info("fare_processor_finished")

    async def process_trip(self, trip: Trip) -> bool:
        """Price one trip and publish its fare. Failures are logged, never raised."""
        record = self._calculator.calculate(trip)
        self._stats.record_fare_calculated()

        try:
            body = encode_fare(record)
        except SerializationError:
            self._log.error("fare_encode_failed", trip_id=trip.id, exc_info=True)
            self._stats.record_serialization_error()
            return False

        try:
            await self._fares.publish(body)
        except TransportError:
            self._log.error("fare_publish_failed", trip_id=trip.id, exc_info=True)
            self._stats.record_publish_error()
            return False

        self._stats.record_fare_published()
        self._log.info("fare_calculated", trip_id=trip.id, fare=round(record.fare, 2))
        return True

    async def _worker(self, work: asyncio.Queue[Trip | None]) -> None:
        while True:
            trip = await work.get()
            if trip is _STOP:
                return
            await self.process_trip(trip)
