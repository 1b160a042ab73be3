"""Exception hierarchy for the fare estimator.

Segment errors are recovered inside the aggregator. Serialization and
transport errors drop a single message. SinkWriteError is raised when a
batch could not be persisted so callers can decide what to do with the
lost records.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fare_estimator.core.models import FareRecord


class FareEstimatorError(Exception):
    """Base exception for all fare estimator errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidSegmentError(FareEstimatorError):
    """Two consecutive points cannot form a valid segment."""


class DegenerateIntervalError(InvalidSegmentError):
    """Both points carry the same timestamp, so no speed can be derived."""


class OutOfOrderPointError(InvalidSegmentError):
    """The point is older than its predecessor in the same trip."""


class ImplausibleSpeedError(InvalidSegmentError):
    """The derived speed is above the configured maximum."""


class SerializationError(FareEstimatorError):
    """A trip or fare could not be encoded or decoded."""


class TransportError(FareEstimatorError):
    """The message transport rejected a publish or consume."""


class SinkWriteError(FareEstimatorError):
    """A batch of fare records could not be persisted."""

    def __init__(
        self,
        message: str,
        records: list[FareRecord] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.records = list(records or [])


class ConfigurationError(FareEstimatorError):
    """Missing or invalid configuration."""
