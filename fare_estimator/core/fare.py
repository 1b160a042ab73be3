"""Fare calculation under time-of-day tariff rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fare_estimator.core.models import FareRecord

if TYPE_CHECKING:
    from fare_estimator.core.models import Segment, TariffConfig, Trip

# Segments faster than this are charged per km, slower ones per idle hour.
MOVING_SPEED_THRESHOLD_KMH = 10.0


class FareCalculator:
    """Applies a tariff to a finalized trip. Stateless and safe to share."""

    def __init__(self, tariff: TariffConfig) -> None:
        self._tariff = tariff

    @property
    def tariff(self) -> TariffConfig:
        return self._tariff

    def is_daytime(self, timestamp: int) -> bool:
        """Day window is [day_start_hour, day_end_hour) in UTC."""
        # UTC hour of any int timestamp, including pre-1970 and far-future ones.
        hour = (timestamp // 3600) % 24
        return self._tariff.day_start_hour <= hour < self._tariff.day_end_hour

    def segment_fare(self, segment: Segment) -> float:
        if segment.speed_kmh > MOVING_SPEED_THRESHOLD_KMH:
            if self.is_daytime(segment.start_timestamp):
                return segment.distance_km * self._tariff.moving_day_fare_per_km
            return segment.distance_km * self._tariff.moving_night_fare_per_km
        return segment.elapsed_hours * self._tariff.idle_fare_per_hour

    def calculate(self, trip: Trip) -> FareRecord:
        total = self._tariff.flag_amount
        for segment in trip.segments:
            total += self.segment_fare(segment)
        return FareRecord(trip_id=trip.id, fare=max(total, self._tariff.min_fare))
