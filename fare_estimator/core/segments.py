"""Segment construction and physical-plausibility checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fare_estimator.core.errors import (
    DegenerateIntervalError,
    ImplausibleSpeedError,
    OutOfOrderPointError,
)
from fare_estimator.core.geo import distance_km
from fare_estimator.core.models import Segment

if TYPE_CHECKING:
    from fare_estimator.core.models import GeoPoint

# Anything faster than this between two fixes is treated as GPS noise.
MAX_SPEED_KMH = 100.0

SECONDS_PER_HOUR = 3600


def validate_segment(segment: Segment, max_speed_kmh: float = MAX_SPEED_KMH) -> None:
    """Raise ImplausibleSpeedError if the segment breaks the speed limit."""
    if segment.speed_kmh > max_speed_kmh:
        raise ImplausibleSpeedError(
            f"speed {segment.speed_kmh:.2f} km/h exceeds {max_speed_kmh:.2f} km/h",
            details={"speed_kmh": segment.speed_kmh, "max_speed_kmh": max_speed_kmh},
        )


def build_segment(
    previous: GeoPoint,
    point: GeoPoint,
    max_speed_kmh: float = MAX_SPEED_KMH,
) -> Segment:
    """Build the segment travelled from ``previous`` to ``point``.

    Raises:
        DegenerateIntervalError: both points share a timestamp.
        OutOfOrderPointError: ``point`` is older than ``previous``.
        ImplausibleSpeedError: the implied speed is above ``max_speed_kmh``.
    """
    elapsed_seconds = point.timestamp - previous.timestamp
    if elapsed_seconds == 0:
        raise DegenerateIntervalError(
            f"zero elapsed time at timestamp {point.timestamp}",
            details={"trip_id": point.trip_id, "timestamp": point.timestamp},
        )
    if elapsed_seconds < 0:
        raise OutOfOrderPointError(
            f"timestamp {point.timestamp} is before {previous.timestamp}",
            details={"trip_id": point.trip_id, "timestamp": point.timestamp,
                     "previous_timestamp": previous.timestamp},
        )

    elapsed_hours = elapsed_seconds / SECONDS_PER_HOUR
    distance = distance_km(previous, point)
    segment = Segment(
        start_timestamp=previous.timestamp,
        speed_kmh=distance / elapsed_hours,
        distance_km=distance,
        elapsed_hours=elapsed_hours,
    )
    validate_segment(segment, max_speed_kmh)
    return segment
