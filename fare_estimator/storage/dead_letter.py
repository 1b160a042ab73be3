"""Dead-letter file for fare records the primary sink could not persist.

One JSON Lines entry per record, appended, so lost fares can be replayed
by hand or by a later job.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from fare_estimator.core.errors import SinkWriteError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.core.models import FareRecord


class JsonlDeadLetterSink:
    """Appends lost fare records to a JSON Lines file."""

    def __init__(self, path: str | Path, logger: FilteringBoundLogger | None = None) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._log = (logger or structlog.get_logger()).bind(component="dead_letter")

    @property
    def path(self) -> Path:
        return self._path

    def _to_jsonl_entry(self, record: FareRecord, reason: str, failed_at: str) -> str:
        entry = {
            "id": record.trip_id,
            "fare": record.fare,
            "reason": reason,
            "failed_at": failed_at,
        }
        return json.dumps(entry, separators=(",", ":"))

    async def write_batch(self, records: list[FareRecord], reason: str = "") -> None:
        failed_at = datetime.now(timezone.utc).isoformat()
        lines = "".join(self._to_jsonl_entry(r, reason, failed_at) + "\n" for r in records)
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(lines)
        except OSError as exc:
            raise SinkWriteError(f"failed to dead-letter {len(records)} fares",
                                 records=records) from exc
        self._log.warning("batch_dead_lettered", count=len(records), path=str(self._path))

    def close(self) -> None:
        pass
