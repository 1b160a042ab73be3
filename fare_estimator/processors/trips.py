"""Ingest stage — aggregates points into trips and publishes them.

Depends on the MessageQueue protocol, not a concrete transport.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Iterable

import structlog

from fare_estimator.core.codec import encode_trip
from fare_estimator.core.errors import SerializationError, TransportError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.broker.base import MessageQueue
    from fare_estimator.core.aggregator import SegmentAggregator
    from fare_estimator.core.models import GeoPoint, Trip
    from fare_estimator.core.stats import PipelineStats

# Points processed between explicit yields to the event loop.
YIELD_EVERY = 256


class TripProcessor:
    """Feeds a point stream through the aggregator and publishes each finalized trip."""

    def __init__(
        self,
        aggregator: SegmentAggregator,
        trip_queue: MessageQueue,
        stats: PipelineStats,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._queue = trip_queue
        self._stats = stats
        self._log = (logger or structlog.get_logger()).bind(component="trip_processor")

    async def run(self, points: Iterable[GeoPoint]) -> int:
        """Process every point. Returns the number of trips published.

        On cancellation the trip being published and the trip in progress are
        still published.
        """
        published = 0
        # A finalized trip whose publish has not completed yet.
        pending: Trip | None = None
        self._log.info("ingest_started")
        try:
            for n, point in enumerate(points, start=1):
                trip = self._aggregator.ingest(point)
                if trip is not None:
                    pending = trip
                    if await self.publish_trip(trip):
                        published += 1
                    pending = None
                if trip is not None or n % YIELD_EVERY == 0:
                    # Let the other stages run.
                    await asyncio.sleep(0)
        finally:
            if pending is not None and await self.publish_trip(pending):
                published += 1
            trip = self._aggregator.flush()
            if trip is not None and await self.publish_trip(trip):
                published += 1
            self._log.info("ingest_finished", trips_published=published)
        return published

    async def publish_trip(self, trip: Trip) -> bool:
        """Encode and publish one trip. Failures are logged, never raised."""
        try:
            body = encode_trip(trip)
        except SerializationError:
            self._log.error("trip_encode_failed", trip_id=trip.id, exc_info=True)
            self._stats.record_serialization_error()
            return False

        try:
            await self._queue.publish(body)
        except TransportError:
            self._log.error("trip_publish_failed", trip_id=trip.id, exc_info=True)
            self._stats.record_publish_error()
            return False

        self._stats.record_trip_published()
        self._stats.update_queue_depth("trips", self._queue.qsize())
        self._log.debug("trip_published", trip_id=trip.id, segments=len(trip.segments))
        return True
