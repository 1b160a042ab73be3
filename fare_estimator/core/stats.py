"""Pipeline statistics.

In-memory counters shared by the pipeline stages and the monitoring API.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class QueueDepth:
    current: int = 0
    max_ever: int = 0


class PipelineStats:
    """Thread-safe pipeline counters.

    Fare workers and the batch timer update these concurrently, and the
    HTTP API reads them from another task, so every access holds the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Ingest
        self.points_received: int = 0
        self.segments_created: int = 0
        self.degenerate_intervals: int = 0
        self.out_of_order_points: int = 0
        self.implausible_speeds: int = 0
        self.trips_finalized: int = 0
        self.trips_published: int = 0

        # Fare calculation
        self.fares_calculated: int = 0
        self.fares_published: int = 0

        # Persistence
        self.batches_flushed: int = 0
        self.records_flushed: int = 0
        self.sink_errors: int = 0
        self.records_lost: int = 0
        self.records_dead_lettered: int = 0

        # Transport
        self.serialization_errors: int = 0
        self.publish_errors: int = 0

        self._queues: dict[str, QueueDepth] = {}

    def record_point(self) -> None:
        with self._lock:
            self.points_received += 1

    def record_segment(self) -> None:
        with self._lock:
            self.segments_created += 1

    def record_rejected_segment(self, reason: str) -> None:
        """Count a rejected point pair. ``reason`` is the error kind."""
        with self._lock:
            if reason == "degenerate_interval":
                self.degenerate_intervals += 1
            elif reason == "out_of_order":
                self.out_of_order_points += 1
            else:
                self.implausible_speeds += 1

    def record_trip_finalized(self) -> None:
        with self._lock:
            self.trips_finalized += 1

    def record_trip_published(self) -> None:
        with self._lock:
            self.trips_published += 1

    def record_fare_calculated(self) -> None:
        with self._lock:
            self.fares_calculated += 1

    def record_fare_published(self) -> None:
        with self._lock:
            self.fares_published += 1

    def record_flush(self, count: int) -> None:
        with self._lock:
            self.batches_flushed += 1
            self.records_flushed += count

    def record_sink_error(self, lost: int, dead_lettered: int = 0) -> None:
        with self._lock:
            self.sink_errors += 1
            self.records_lost += lost
            self.records_dead_lettered += dead_lettered

    def record_serialization_error(self) -> None:
        with self._lock:
            self.serialization_errors += 1

    def record_publish_error(self) -> None:
        with self._lock:
            self.publish_errors += 1

    def update_queue_depth(self, name: str, depth: int) -> None:
        with self._lock:
            queue = self._queues.setdefault(name, QueueDepth())
            queue.current = depth
            if depth > queue.max_ever:
                queue.max_ever = depth

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "ingest": {
                    "points_received": self.points_received,
                    "segments_created": self.segments_created,
                    "trips_finalized": self.trips_finalized,
                    "trips_published": self.trips_published,
                    "rejected": {
                        "degenerate_interval": self.degenerate_intervals,
                        "out_of_order": self.out_of_order_points,
                        "implausible_speed": self.implausible_speeds,
                    },
                },
                "fares": {
                    "calculated": self.fares_calculated,
                    "published": self.fares_published,
                },
                "persistence": {
                    "batches_flushed": self.batches_flushed,
                    "records_flushed": self.records_flushed,
                    "sink_errors": self.sink_errors,
                    "records_lost": self.records_lost,
                    "records_dead_lettered": self.records_dead_lettered,
                },
                "transport": {
                    "serialization_errors": self.serialization_errors,
                    "publish_errors": self.publish_errors,
                },
                "queues": {
                    name: {"depth": q.current, "max_depth_ever": q.max_ever}
                    for name, q in self._queues.items()
                },
            }
