"""Tests for the HTTP API."""

from __future__ import annotations

import json
import math

import pytest

# 2024-01-01 10:00:00 UTC
DAY = 1704103200


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["broker_backend"] == "memory"
    assert data["stages"] == ["ingest", "fare", "writer"]
    assert data["queue_depths"] == {"trips": 0, "fares": 0}
    assert data["output_writable"] is True
    assert "uptime_seconds" in data


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/v1/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ingest"]["points_received"] == 0
    assert data["persistence"]["records_lost"] == 0


@pytest.mark.asyncio
async def test_tariff(client):
    resp = await client.get("/api/v1/tariff")
    assert resp.status_code == 200
    assert resp.json() == {
        "flag_amount": 1.30,
        "min_fare": 3.47,
        "idle_fare_per_hour": 11.90,
        "moving_day_fare_per_km": 0.74,
        "moving_night_fare_per_km": 1.30,
        "day_start_hour": 6,
        "day_end_hour": 20,
    }


@pytest.mark.asyncio
async def test_estimate(client):
    ten_km_north = math.degrees(10 / 6371.0)
    payload = {"points": [
        {"trip_id": 1, "latitude": 0.0, "longitude": 0.0, "timestamp": DAY},
        {"trip_id": 1, "latitude": ten_km_north, "longitude": 0.0, "timestamp": DAY + 900},
        {"trip_id": 2, "latitude": 3.0, "longitude": 3.0, "timestamp": DAY},
    ]}
    resp = await client.post("/api/v1/estimates", content=json.dumps(payload),
                             headers={"content-type": "application/json"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["trips"] == 2
    assert data["segments"] == 1
    assert data["fares"] == [{"id": 1, "fare": 8.7}, {"id": 2, "fare": 3.47}]


@pytest.mark.asyncio
async def test_estimate_does_not_touch_pipeline_stats(client):
    payload = {"points": [{"trip_id": 1, "latitude": 0.0, "longitude": 0.0, "timestamp": DAY}]}
    await client.post("/api/v1/estimates", content=json.dumps(payload))
    resp = await client.get("/api/v1/stats")
    assert resp.json()["ingest"]["points_received"] == 0


@pytest.mark.asyncio
async def test_estimate_empty_points(client):
    resp = await client.post("/api/v1/estimates", content=json.dumps({"points": []}))
    assert resp.status_code == 200
    assert resp.json() == {"fares": [], "trips": 0, "segments": 0}


@pytest.mark.asyncio
async def test_estimate_invalid_json(client):
    resp = await client.post("/api/v1/estimates", content=b"not json",
                             headers={"content-type": "application/json"})
    assert resp.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"points": "nope"},
    {"nothing": []},
    {"points": [{"trip_id": 1, "latitude": 0.0, "longitude": 0.0}]},
    {"points": [{"trip_id": "1", "latitude": 0.0, "longitude": 0.0, "timestamp": 1}]},
    {"points": [{"trip_id": 1, "latitude": 95.0, "longitude": 0.0, "timestamp": 1}]},
    {"points": [{"trip_id": 1, "latitude": 0.0, "longitude": 0.0, "timestamp": 1.5}]},
    {"points": [42]},
])
async def test_estimate_invalid_points(client, body):
    resp = await client.post("/api/v1/estimates", content=json.dumps(body))
    assert resp.status_code == 422
    assert "error" in resp.json()


@pytest.mark.asyncio
async def test_estimate_millisecond_timestamps(client):
    ten_km_north = math.degrees(10 / 6371.0)
    payload = {"points": [
        {"trip_id": 1, "latitude": 0.0, "longitude": 0.0, "timestamp": DAY * 1000},
        {"trip_id": 1, "latitude": ten_km_north, "longitude": 0.0,
         "timestamp": DAY * 1000 + 900_000},
    ]}
    resp = await client.post("/api/v1/estimates", content=json.dumps(payload))
    assert resp.status_code == 200
    assert resp.json()["trips"] == 1
