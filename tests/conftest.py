"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from fare_estimator.config import AppConfig
from fare_estimator.context import AppContext
from fare_estimator.core.errors import SinkWriteError
from fare_estimator.core.models import FareRecord, GeoPoint, TariffConfig
from fare_estimator.pipeline import FarePipeline

# Tariff used by the worked fare examples.
EXAMPLE_TARIFF = TariffConfig(
    flag_amount=5.0,
    min_fare=20.0,
    idle_fare_per_hour=2.0,
    moving_day_fare_per_km=10.0,
    moving_night_fare_per_km=15.0,
    day_start_hour=6,
    day_end_hour=20,
)


class RecordingSink:
    """FareSink double that keeps every batch and can be told to fail."""

    def __init__(self, fail_times: int = 0) -> None:
        self.batches: list[list[FareRecord]] = []
        self.calls = 0
        self.fail_times = fail_times
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0

    async def write_batch(self, records: list[FareRecord]) -> None:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.calls <= self.fail_times:
                raise SinkWriteError("disk full", records=records)
            self.batches.append(list(records))
        finally:
            self.in_flight -= 1

    def close(self) -> None:
        self.closed = True

    @property
    def records(self) -> list[FareRecord]:
        return [r for batch in self.batches for r in batch]


def point(trip_id: int, lat: float, lon: float, ts: int) -> GeoPoint:
    return GeoPoint(trip_id=trip_id, latitude=lat, longitude=lon, timestamp=ts)


@pytest.fixture
def config(tmp_path) -> AppConfig:
    """Default config with every file under a temp directory."""
    config = AppConfig()
    config.input.csv_path = str(tmp_path / "points.csv")
    config.output.csv_path = str(tmp_path / "out" / "fares.csv")
    config.output.dead_letter_path = str(tmp_path / "out" / "fares.dead.jsonl")
    config.output.retry_base_delay_seconds = 0.0
    config.logging.level = "warning"
    return config


@pytest.fixture
def context(config) -> AppContext:
    ctx = AppContext.create(config)
    ctx.pipeline = FarePipeline.from_config(config, ctx.stats, logger=ctx.logger)
    return ctx


@pytest.fixture
async def client(context):
    from fare_estimator.main import app

    # ASGITransport skips the lifespan, so install the context by hand.
    app.state.context = context
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    del app.state.context
