from __future__ import annotations

import sys
from datetime import datetime
from typing import Sequence, TextIO

from dbmon.core.models import CycleResult, Status
from dbmon.services.metrics import downtime_summary

TITLE = "DBMon - Database Monitor"
_CLEAR = "\x1b[2J\x1b[H"


class TerminalDisplay:
    def __init__(self, stream: TextIO | None = None, clear_screen: bool = True) -> None:
        self._stream = stream or sys.stdout
        self._clear_screen = clear_screen and self._stream.isatty()

    def render(self, results: Sequence[CycleResult], now: datetime) -> None:
        lines = [TITLE, "=" * 70, ""]
        for result in results:
            lines.extend(format_result(result, now))
        lines.extend(["", "Press Ctrl+C to exit"])

        if self._clear_screen:
            self._stream.write(_CLEAR)
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()


def format_result(result: CycleResult, now: datetime) -> list[str]:
    target, outcome = result.target, result.outcome
    stamp = now.astimezone().strftime("%H:%M:%S")
    label = f"{target.name} ({target.engine})"

    if outcome.status is Status.UP:
        lines = [f"✓ {label} - {outcome.elapsed_ms}ms [{stamp}]"]
    elif outcome.status is Status.DOWN:
        lines = [
            f"✗ {label} - DOWN ({outcome.elapsed_ms}ms) [{stamp}]",
            f"  Error: {outcome.error}",
        ]
    else:
        lines = [f"? {label} - {outcome.status.value} [{stamp}]"]
        if outcome.error:
            lines.append(f"  Error: {outcome.error}")

    lines.append(f"  {downtime_summary(result.state, now)}")
    return lines
