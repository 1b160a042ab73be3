"""Fare estimator service — main entry point.

Wires the configured pipeline stages and the API layer together. The
pipeline runs as a background task for the lifetime of the app.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from fare_estimator.api.estimates import router as estimates_router
from fare_estimator.api.monitoring import VERSION
from fare_estimator.api.monitoring import router as monitoring_router
from fare_estimator.config import AppConfig, load_config
from fare_estimator.context import AppContext
from fare_estimator.logging_setup import configure_logging
from fare_estimator.pipeline import FarePipeline


def create_app(
    config_path: str | Path | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    ``config`` wins over ``config_path``, which defaults to ./config.yaml.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        cfg = config if config is not None else load_config(config_path)
        logger = configure_logging(cfg.logging)
        ctx = AppContext.create(cfg, logger)

        logger.info("server_starting",
                    env=cfg.server.env,
                    stages=cfg.pipeline.stages,
                    broker=cfg.broker.backend)

        pipeline = FarePipeline.from_config(cfg, ctx.stats, logger=logger)
        # Unreachable broker or unopenable files abort startup.
        await pipeline.prepare()
        ctx.pipeline = pipeline
        app.state.context = ctx

        pipeline_task = asyncio.create_task(pipeline.run(), name="pipeline")
        app.state.pipeline_task = pipeline_task
        logger.info("server_started", host=cfg.server.host, port=cfg.server.port)

        yield

        # Shutdown
        pipeline_task.cancel()
        try:
            await pipeline_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("pipeline_failed")
        logger.info("server_stopped")

    app = FastAPI(
        title="Fare Estimator",
        description="Delivery trip fare estimation service",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(monitoring_router)
    app.include_router(estimates_router)
    return app


app = create_app(os.environ.get("FARE_CONFIG"))
