"""Fare estimator — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON payloads are converted to/from these at the boundary (see codec.py).
"""

from __future__ import annotations

from dataclasses import dataclass

from fare_estimator.core.errors import ConfigurationError


@dataclass(frozen=True)
class GeoPoint:
    trip_id: int
    latitude: float
    longitude: float
    timestamp: int  # unix seconds, UTC


@dataclass(frozen=True)
class Segment:
    """Motion between two consecutive points of the same trip."""
    start_timestamp: int
    speed_kmh: float
    distance_km: float
    elapsed_hours: float


@dataclass(frozen=True)
class Trip:
    """A finalized delivery trip. Never mutated after the aggregator emits it."""
    id: int
    segments: tuple[Segment, ...] = ()


@dataclass(frozen=True)
class FareRecord:
    trip_id: int
    fare: float


@dataclass(frozen=True)
class TariffConfig:
    flag_amount: float
    min_fare: float
    idle_fare_per_hour: float
    moving_day_fare_per_km: float
    moving_night_fare_per_km: float
    day_start_hour: int = 6
    day_end_hour: int = 20

    def __post_init__(self) -> None:
        for name in ("day_start_hour", "day_end_hour"):
            hour = getattr(self, name)
            if not 0 <= hour < 24:
                raise ConfigurationError(f"{name} must be in [0, 24), got {hour}",
                                         details={name: hour})
        for name in ("flag_amount", "min_fare", "idle_fare_per_hour",
                     "moving_day_fare_per_km", "moving_night_fare_per_km"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must not be negative, got {value}",
                                         details={name: value})

    def to_dict(self) -> dict:
        return {
            "flag_amount": self.flag_amount,
            "min_fare": self.min_fare,
            "idle_fare_per_hour": self.idle_fare_per_hour,
            "moving_day_fare_per_km": self.moving_day_fare_per_km,
            "moving_night_fare_per_km": self.moving_night_fare_per_km,
            "day_start_hour": self.day_start_hour,
            "day_end_hour": self.day_end_hour,
        }
