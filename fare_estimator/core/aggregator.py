"""Segment aggregator — turns an ordered point stream into finalized trips.

Points arrive grouped by trip id. Consecutive points of the same trip form
a segment; pairs that cannot form a plausible segment are dropped without
discarding the rest of the trip. A trip is finalized when a different trip
id shows up or the stream ends (``flush``).

State machine: Empty -> InTrip(trip_id, previous_point?) -> ... -> Empty.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Iterator

import structlog

from fare_estimator.core.errors import (
    DegenerateIntervalError,
    ImplausibleSpeedError,
    OutOfOrderPointError,
)
from fare_estimator.core.models import Trip
from fare_estimator.core.segments import MAX_SPEED_KMH, build_segment

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.core.models import GeoPoint, Segment
    from fare_estimator.core.stats import PipelineStats


class SegmentAggregator:
    """Builds validated segments per trip from a single ordered point stream.

    Not safe for concurrent use: segment construction depends on the
    immediately preceding point, so one stream needs one aggregator.
    """

    def __init__(
        self,
        max_speed_kmh: float = MAX_SPEED_KMH,
        stats: PipelineStats | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._max_speed_kmh = max_speed_kmh
        self._stats = stats
        self._log = (logger or structlog.get_logger()).bind(component="aggregator")

        self._trip_id: int | None = None
        self._segments: list[Segment] = []
        self._previous: GeoPoint | None = None

    @property
    def current_trip_id(self) -> int | None:
        return self._trip_id

    @property
    def previous_point(self) -> GeoPoint | None:
        return self._previous

    def ingest(self, point: GeoPoint) -> Trip | None:
        """Consume one point. Returns the previous trip if this point closed it."""
        if self._stats is not None:
            self._stats.record_point()

        finished = None
        if self._trip_id is None or point.trip_id != self._trip_id:
            finished = self._finalize()
            self._trip_id = point.trip_id

        if self._previous is None:
            self._previous = point
            return finished

        try:
            segment = build_segment(self._previous, point, self._max_speed_kmh)
        except DegenerateIntervalError as exc:
            # Keep the old base point; the next fix is compared against it.
            self._reject(point, exc, "degenerate_interval")
            return finished
        except OutOfOrderPointError as exc:
            self._reject(point, exc, "out_of_order")
            return finished
        except ImplausibleSpeedError as exc:
            # Move the base forward so one bad fix can't poison the rest of the trip.
            self._reject(point, exc, "implausible_speed")
            self._previous = point
            return finished

        self._segments.append(segment)
        self._previous = point
        if self._stats is not None:
            self._stats.record_segment()
        return finished

    def flush(self) -> Trip | None:
        """Finalize the trip in progress, if any. Call on end of stream or shutdown."""
        return self._finalize()

    def aggregate(self, points: Iterable[GeoPoint]) -> Iterator[Trip]:
        """Yield every finalized trip of ``points``, including the last one."""
        for point in points:
            trip = self.ingest(point)
            if trip is not None:
                yield trip
        trip = self.flush()
        if trip is not None:
            yield trip

    def _finalize(self) -> Trip | None:
        if self._trip_id is None:
            return None

        trip = Trip(id=self._trip_id, segments=tuple(self._segments))
        self._trip_id = None
        self._segments = []
        self._previous = None

        if self._stats is not None:
            self._stats.record_trip_finalized()
        self._log.debug("trip_finalized", trip_id=trip.id, segments=len(trip.segments))
        return trip

    def _reject(self, point: GeoPoint, exc: Exception, reason: str) -> None:
        if self._stats is not None:
            self._stats.record_rejected_segment(reason)
        self._log.warning("segment_rejected", trip_id=point.trip_id,
                          timestamp=point.timestamp, reason=reason, error=str(exc))
