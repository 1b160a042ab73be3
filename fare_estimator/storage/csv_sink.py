"""CSV implementation of FareSink.

Each record becomes one ``id,fare`` row with the fare rounded to two
decimals. The file is opened once in append mode, so restarts and repeated
batches never truncate earlier rows.

A batch is rendered in memory and handed to an unbuffered file, so a write
that fails leaves nothing queued in Python to resurface on the next write.
"""

from __future__ import annotations

import csv
import io
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.errors import SinkWriteError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.core.models import FareRecord


def format_row(record: FareRecord) -> list[str]:
    return [str(record.trip_id), f"{record.fare:.2f}"]


def render_batch(records: list[FareRecord]) -> bytes:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerows(format_row(r) for r in records)
    return buf.getvalue().encode("utf-8")


class CsvFareSink:
    """FareSink backed by a single append-only CSV file."""

    def __init__(self, path: str | Path, logger: FilteringBoundLogger | None = None) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Opening failures propagate: a sink we cannot open is fatal at start-up.
        self._file = open(self._path, "ab", buffering=0)
        self._lock = threading.Lock()
        self._log = (logger or structlog.get_logger()).bind(component="csv_sink")

    @property
    def path(self) -> Path:
        return self._path

    async def write_batch(self, records: list[FareRecord]) -> None:
        """Append a batch of fare rows."""
        data = memoryview(render_batch(records))
        with self._lock:
            try:
                while data:
                    written = self._file.write(data)
                    data = data[written:]
            except (OSError, ValueError) as exc:
                raise SinkWriteError(f"failed to write {len(records)} fares to {self._path}",
                                     records=records) from exc
        self._log.debug("batch_written", count=len(records), path=str(self._path))

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.close()
