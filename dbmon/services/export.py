from __future__ import annotations

import csv
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Sequence

from dbmon.core.models import DowntimeInterval, SessionEntry

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

EXPORT_FIELDS = (
    "timestamp",
    "server_name",
    "server_type",
    "status",
    "response_time_ms",
    "error_message",
    "downtime_periods_json",
)


def to_rows(log: Iterable[SessionEntry]) -> list[dict[str, str | int]]:
    """Flatten the session log into CSV-ready rows, preserving log order.

    Open downtime intervals keep an explicit ``"endTime": null`` in the JSON column.
    """
    return [
        {
            "timestamp": _iso(entry.timestamp),
            "server_name": entry.target_name,
            "server_type": entry.engine,
            "status": entry.status.value,
            "response_time_ms": entry.elapsed_ms,
            "error_message": entry.error or "",
            "downtime_periods_json": _periods_json(entry.downtime_snapshot),
        }
        for entry in log
    ]


def write_csv(rows: Sequence[dict[str, str | int]], path: Path) -> Path:
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
    return path


def default_export_filename(now: datetime) -> str:
    return f"dbmon_{now:%Y-%m-%d}_{now:%H-%M-%S}.csv"


def epoch_ms(ts: datetime) -> int:
    return (ts - _EPOCH) // timedelta(milliseconds=1)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _periods_json(intervals: Sequence[DowntimeInterval]) -> str:
    periods = [
        {
            "startTime": epoch_ms(interval.start),
            "endTime": epoch_ms(interval.end) if interval.end is not None else None,
        }
        for interval in intervals
    ]
    return json.dumps(periods, separators=(",", ":"))
