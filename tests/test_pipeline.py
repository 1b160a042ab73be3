"""End-to-end tests: CSV points in, CSV fares out, over the in-memory transport."""

from __future__ import annotations

import asyncio
import math

import pytest

from fare_estimator.context import AppContext
from fare_estimator.core.errors import TransportError
from fare_estimator.pipeline import FarePipeline

from conftest import RecordingSink, point

# 2024-01-01 10:00:00 UTC, inside the default day window.
DAY = 1704103200


def lat_for(km: float) -> float:
    return math.degrees(km / 6371.0)


def write_points(path, rows):
    path.write_text("".join(f"{t},{lat:.9f},{lon},{ts}\n" for t, lat, lon, ts in rows))


@pytest.mark.asyncio
async def test_csv_to_csv(config, tmp_path):
    write_points(tmp_path / "points.csv", [
        # Trip 1: 20 km in 30 min during the day, priced per km.
        (1, 0.0, 0.0, DAY),
        (1, lat_for(10.0), 0.0, DAY + 900),
        (1, lat_for(20.0), 0.0, DAY + 1800),
        # Trip 2: a single fix.
        (2, 1.0, 1.0, DAY),
        # Trip 3: parked for an hour.
        (3, 2.0, 2.0, DAY),
        (3, 2.0, 2.0, DAY + 3600),
    ])
    config.output.batch_size = 2
    ctx = AppContext.create(config)
    pipeline = FarePipeline.from_config(config, ctx.stats)

    result = await pipeline.run()

    assert result.trips_published == 3
    assert result.fares_received == 3
    rows = dict(line.split(",") for line in
                (tmp_path / "out" / "fares.csv").read_text().splitlines())
    # 1.30 + 20 * 0.74
    assert rows["1"] == "16.10"
    assert rows["2"] == "3.47"
    # 1.30 + 11.90
    assert rows["3"] == "13.20"
    assert ctx.stats.snapshot()["persistence"]["records_flushed"] == 3


@pytest.mark.asyncio
async def test_custom_points_and_sink(config):
    sink = RecordingSink()
    ctx = AppContext.create(config)
    pipeline = FarePipeline.from_config(config, ctx.stats)
    points = [point(i, 0.0, 0.0, DAY) for i in range(1, 8)]

    result = await pipeline.run(points, sink)

    assert result.trips_published == 7
    assert sorted(r.trip_id for r in sink.records) == list(range(1, 8))
    assert not sink.closed


@pytest.mark.asyncio
async def test_rejected_points_do_not_stop_the_run(config):
    sink = RecordingSink()
    ctx = AppContext.create(config)
    points = [
        point(1, 0.0, 0.0, DAY),
        point(1, 0.0, 0.0, DAY),
        point(1, lat_for(500.0), 0.0, DAY + 60),
        point(1, 0.0, 0.0, DAY - 60),
        point(2, 0.0, 0.0, DAY),
    ]
    await FarePipeline.from_config(config, ctx.stats).run(points, sink)

    assert [r.trip_id for r in sorted(sink.records, key=lambda r: r.trip_id)] == [1, 2]
    rejected = ctx.stats.snapshot()["ingest"]["rejected"]
    assert rejected == {"degenerate_interval": 1, "out_of_order": 1, "implausible_speed": 1}


@pytest.mark.asyncio
async def test_missing_input_is_fatal(config):
    ctx = AppContext.create(config)
    pipeline = FarePipeline.from_config(config, ctx.stats)
    with pytest.raises(FileNotFoundError):
        await pipeline.run()


@pytest.mark.asyncio
async def test_cancel_drains_trip_in_progress(config):
    sink = RecordingSink()
    ctx = AppContext.create(config)
    pipeline = FarePipeline.from_config(config, ctx.stats)
    started = asyncio.Event()

    def endless():
        yield point(1, 0.0, 0.0, DAY)
        yield point(2, 0.0, 0.0, DAY)
        started.set()
        ts = DAY
        while True:
            ts += 60
            yield point(3, 0.0, 0.0, ts)

    task = asyncio.create_task(pipeline.run(endless(), sink))
    await asyncio.wait_for(started.wait(), timeout=5)
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # Trips 1 and 2 finished normally; trip 3 was flushed on shutdown.
    assert sorted(r.trip_id for r in sink.records) == [1, 2, 3]


@pytest.mark.asyncio
async def test_no_stages(config):
    config.pipeline.stages = []
    ctx = AppContext.create(config)
    result = await FarePipeline.from_config(config, ctx.stats).run([], RecordingSink())
    assert result.trips_published == 0


@pytest.mark.asyncio
async def test_redis_unreachable_is_fatal(config):
    config.broker.backend = "redis"
    config.broker.redis_url = "redis://127.0.0.1:1"
    ctx = AppContext.create(config)
    pipeline = FarePipeline.from_config(config, ctx.stats)
    with pytest.raises(TransportError):
        await pipeline.prepare([], RecordingSink())


@pytest.mark.asyncio
async def test_undecodable_row_does_not_stop_the_run(config, tmp_path):
    (tmp_path / "points.csv").write_bytes(
        b"1,0,0,0\n"
        b"1,0,0.001,60\n"
        b"2,0,0,0\n"
        b"\xff\xfe,bad,row,1\n"
        b"3,0,0,0\n"
    )
    sink = RecordingSink()
    ctx = AppContext.create(config)
    result = await FarePipeline.from_config(config, ctx.stats).run(sink=sink)

    assert result.trips_published == 3
    assert sorted(r.trip_id for r in sink.records) == [1, 2, 3]
