"""Health check and monitoring endpoints."""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from fare_estimator.context import AppContext

router = APIRouter(prefix="/api/v1")

VERSION = "0.1.0"


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _output_writable(csv_path: str) -> bool:
    # The sink creates missing directories, so check the nearest existing one.
    directory = Path(csv_path).absolute().parent
    while not directory.exists() and directory != directory.parent:
        directory = directory.parent
    return os.access(directory, os.W_OK)


@router.get("/health")
async def health(ctx: AppContext = Depends(get_context)) -> dict:
    """Basic health check."""
    snapshot = ctx.stats.snapshot()
    pipeline = ctx.pipeline
    return {
        "status": "ok",
        "version": VERSION,
        "uptime_seconds": snapshot["uptime_seconds"],
        "stages": list(ctx.config.pipeline.stages),
        "broker_backend": ctx.config.broker.backend,
        "queue_depths": {
            "trips": pipeline.trip_queue.qsize() if pipeline else 0,
            "fares": pipeline.fare_queue.qsize() if pipeline else 0,
        },
        "output_writable": _output_writable(ctx.config.output.csv_path),
    }


@router.get("/stats")
async def stats(ctx: AppContext = Depends(get_context)) -> dict:
    """Pipeline counters: points, rejected segments, fares, flushed batches."""
    return ctx.stats.snapshot()


@router.get("/tariff")
async def tariff(ctx: AppContext = Depends(get_context)) -> dict:
    """The tariff every fare of this process is priced with."""
    return ctx.tariff.to_dict()
