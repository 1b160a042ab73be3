"""Retry with exponential backoff for async I/O operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

import structlog

from fare_estimator.core.errors import SinkWriteError, TransportError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

T = TypeVar("T")


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (SinkWriteError, TransportError)
    )

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
    logger: FilteringBoundLogger | None = None,
) -> T:
    """Run ``operation`` until it succeeds or ``config.max_attempts`` is reached.

    Only ``config.retryable_exceptions`` are retried; the last one is re-raised.
    """
    if config is None:
        config = RetryConfig()
    log = logger or structlog.get_logger()

    attempts = max(config.max_attempts, 1)
    for attempt in range(attempts):
        try:
            return await operation()
        except config.retryable_exceptions as exc:
            if attempt == attempts - 1:
                log.error("retries_exhausted", operation=operation_name,
                          attempts=attempts, error=str(exc))
                raise
            delay = config.delay_for(attempt)
            log.warning("retrying", operation=operation_name, attempt=attempt + 1,
                        max_attempts=attempts, delay_s=round(delay, 2), error=str(exc))
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
