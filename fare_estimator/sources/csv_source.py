"""CSV point source.

Rows are ``trip_id,latitude,longitude,timestamp`` with the timestamp in
unix seconds. A header line is tolerated: like any other malformed row it
is skipped with a warning.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import structlog

from fare_estimator.core.models import GeoPoint

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

EXPECTED_COLUMNS = 4


def parse_row(row: list[str]) -> GeoPoint:
    """Parse one CSV row. Raises ValueError if the row is malformed."""
    if len(row) != EXPECTED_COLUMNS:
        raise ValueError(f"expected {EXPECTED_COLUMNS} columns, got {len(row)}")

    trip_id = int(row[0].strip())
    lat = float(row[1].strip())
    lon = float(row[2].strip())
    timestamp = int(row[3].strip())

    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude {lat} out of range")
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"longitude {lon} out of range")
    return GeoPoint(trip_id=trip_id, latitude=lat, longitude=lon, timestamp=timestamp)


class CsvPointSource:
    """Iterable of GeoPoint read lazily from a CSV file."""

    def __init__(self, path: str | Path, logger: FilteringBoundLogger | None = None) -> None:
        self._path = Path(path)
        if not self._path.is_file():
            raise FileNotFoundError(f"point file not found: {self._path}")
        self._log = (logger or structlog.get_logger()).bind(component="csv_source")
        self.rows_total = 0
        self.rows_skipped = 0

    @property
    def path(self) -> Path:
        return self._path

    def __iter__(self) -> Iterator[GeoPoint]:
        # Undecodable bytes become U+FFFD and fail parse_row like any malformed row.
        with self._path.open("r", encoding="utf-8", errors="replace", newline="") as f:
            for line_no, row in enumerate(csv.reader(f), start=1):
                if not row:
                    continue
                self.rows_total += 1
                try:
                    yield parse_row(row)
                except ValueError as exc:
                    self.rows_skipped += 1
                    self._log.warning("row_skipped", line=line_no, error=str(exc))

        self._log.info("source_exhausted", path=str(self._path),
                       rows_total=self.rows_total, rows_skipped=self.rows_skipped)
