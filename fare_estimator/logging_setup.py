"""structlog configuration, applied once by the entry points."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from fare_estimator.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> structlog.typing.FilteringBoundLogger:
    """Configure structlog based on the logging config and return a root logger."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level.upper()),
        ),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger("fare_estimator")
