"""Explicit application context handed to the HTTP layer and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.stats import PipelineStats

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.config import AppConfig
    from fare_estimator.core.models import TariffConfig
    from fare_estimator.pipeline import FarePipeline


@dataclass
class AppContext:
    config: AppConfig
    tariff: TariffConfig
    stats: PipelineStats
    logger: FilteringBoundLogger
    pipeline: FarePipeline | None = None

    @classmethod
    def create(cls, config: AppConfig, logger: FilteringBoundLogger | None = None) -> AppContext:
        return cls(
            config=config,
            tariff=config.tariff(),
            stats=PipelineStats(),
            logger=logger or structlog.get_logger(),
        )
