"""On-demand fare estimate endpoint.

Thin FastAPI adapter: parses JSON points into GeoPoint models, runs them
through a fresh aggregator and the calculator, and returns one fare per trip.
"""

from __future__ import annotations

import json
import math

from fastapi import APIRouter, Depends, Request, Response

from fare_estimator.api.monitoring import get_context
from fare_estimator.context import AppContext
from fare_estimator.core.aggregator import SegmentAggregator
from fare_estimator.core.fare import FareCalculator
from fare_estimator.core.models import GeoPoint

router = APIRouter(prefix="/api/v1")


def _json_response(data: dict, status_code: int = 200) -> Response:
    return Response(content=json.dumps(data), status_code=status_code,
                    media_type="application/json")


def _parse_json_point(data: dict) -> GeoPoint:
    """Parse a point from JSON. Raises ValueError on missing or invalid fields."""
    if not isinstance(data, dict):
        raise ValueError("each point must be a JSON object")
    try:
        trip_id = data["trip_id"]
        lat = data["latitude"]
        lon = data["longitude"]
        timestamp = data["timestamp"]
    except KeyError as exc:
        raise ValueError(f"missing field {exc.args[0]!r}") from exc

    if isinstance(trip_id, bool) or not isinstance(trip_id, int):
        raise ValueError("trip_id must be an integer")
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ValueError("timestamp must be an integer")
    for name, value, limit in (("latitude", lat, 90.0), ("longitude", lon, 180.0)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValueError(f"{name} must be a number")
        if not -limit <= value <= limit:
            raise ValueError(f"{name} {value} out of range")
    return GeoPoint(trip_id=trip_id, latitude=float(lat), longitude=float(lon), timestamp=timestamp)


@router.post("/estimates")
async def estimate_fares(request: Request, ctx: AppContext = Depends(get_context)) -> Response:
    """Estimate fares for the trips described by a list of points.

    Body: {"points": [{"trip_id": 1, "latitude": .., "longitude": .., "timestamp": ..}]}
    Points must be grouped by trip and ordered by time, like the CSV input.
    """
    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _json_response({"error": "invalid JSON"}, status_code=400)

    raw_points = body.get("points") if isinstance(body, dict) else None
    if not isinstance(raw_points, list):
        return _json_response({"error": "'points' must be a list"}, status_code=422)

    try:
        points = [_parse_json_point(p) for p in raw_points]
    except ValueError as exc:
        return _json_response({"error": str(exc)}, status_code=422)

    aggregator = SegmentAggregator(
        max_speed_kmh=ctx.config.limits.max_speed_kmh,
        logger=ctx.logger,
    )
    calculator = FareCalculator(ctx.tariff)
    fares = []
    segments = 0
    for trip in aggregator.aggregate(points):
        record = calculator.calculate(trip)
        segments += len(trip.segments)
        fares.append({"id": record.trip_id, "fare": round(record.fare, 2)})

    return _json_response({"fares": fares, "trips": len(fares), "segments": segments})
