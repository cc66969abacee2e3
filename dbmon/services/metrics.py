from __future__ import annotations

from datetime import datetime, timedelta

from dbmon.core.models import TargetState
from dbmon.services.availability import total_downtime

RECENT_PERIODS = 3


def format_duration(ms: int | float) -> str:
    if ms <= 0:
        return "0s"

    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def downtime_summary(state: TargetState, now: datetime) -> str:
    """One-line downtime digest: the last few periods followed by the running total."""
    if not state.intervals:
        return "Total downtime: 0s"

    parts: list[str] = []
    for interval in state.intervals[-RECENT_PERIODS:]:
        end = interval.end if interval.end is not None else now
        duration = format_duration(_ms(end - interval.start))
        start_label = _clock_time(interval.start)
        if interval.is_open:
            parts.append(f"↓ {start_label}-NOW ({duration})")
        else:
            parts.append(f"✓ {start_label}-{_clock_time(end)} ({duration})")

    total = format_duration(_ms(total_downtime(state, now)))
    return f"{' | '.join(parts)} | Total: {total}"


def _ms(delta: timedelta) -> int:
    return delta // timedelta(milliseconds=1)


def _clock_time(ts: datetime) -> str:
    return ts.astimezone().strftime("%H:%M:%S")
