"""JSON wire format for trips and fares exchanged between stages.

Trip:  {"id": 1, "segments": [{"startTimestampSeconds": ..., "speedKmPerHour": ...,
        "distanceKm": ..., "elapsedHours": ...}]}
Fare:  {"id": 1, "fare": 12.5}
"""

from __future__ import annotations

import json
import math

from fare_estimator.core.errors import SerializationError
from fare_estimator.core.models import FareRecord, Segment, Trip


def _segment_to_dict(segment: Segment) -> dict:
    return {
        "startTimestampSeconds": segment.start_timestamp,
        "speedKmPerHour": segment.speed_kmh,
        "distanceKm": segment.distance_km,
        "elapsedHours": segment.elapsed_hours,
    }


def _dumps(data: dict) -> bytes:
    try:
        return json.dumps(data, separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"cannot encode payload: {exc}") from exc


def _loads(body: bytes) -> dict:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SerializationError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SerializationError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _int_field(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SerializationError(f"field {key!r} must be an integer, got {value!r}")
    return value


def _float_field(data: dict, key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise SerializationError(f"field {key!r} must be a finite number, got {value!r}")
    return float(value)


def encode_trip(trip: Trip) -> bytes:
    return _dumps({"id": trip.id, "segments": [_segment_to_dict(s) for s in trip.segments]})


def decode_trip(body: bytes) -> Trip:
    data = _loads(body)
    raw_segments = data.get("segments", [])
    if not isinstance(raw_segments, list):
        raise SerializationError("field 'segments' must be a list")

    segments = []
    for raw in raw_segments:
        if not isinstance(raw, dict):
            raise SerializationError("each segment must be a JSON object")
        segments.append(Segment(
            start_timestamp=_int_field(raw, "startTimestampSeconds"),
            speed_kmh=_float_field(raw, "speedKmPerHour"),
            distance_km=_float_field(raw, "distanceKm"),
            elapsed_hours=_float_field(raw, "elapsedHours"),
        ))
    return Trip(id=_int_field(data, "id"), segments=tuple(segments))


def encode_fare(record: FareRecord) -> bytes:
    return _dumps({"id": record.trip_id, "fare": record.fare})


def decode_fare(body: bytes) -> FareRecord:
    data = _loads(body)
    return FareRecord(trip_id=_int_field(data, "id"), fare=_float_field(data, "fare"))
