from __future__ import annotations

from datetime import datetime
from typing import Iterator, Sequence, overload

from dbmon.core.models import ProbeOutcome, SessionEntry, Target, TargetState


class SessionLog(Sequence[SessionEntry]):
    """Append-only record of every observation made during a session."""

    def __init__(self) -> None:
        self._entries: list[SessionEntry] = []

    def append(self, entry: SessionEntry) -> None:
        self._entries.append(entry)

    @overload
    def __getitem__(self, index: int) -> SessionEntry: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[SessionEntry, ...]: ...

    def __getitem__(self, index: int | slice) -> SessionEntry | tuple[SessionEntry, ...]:
        if isinstance(index, slice):
            return tuple(self._entries[index])
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SessionEntry]:
        return iter(self._entries)


class SessionRecorder:
    def __init__(self, log: SessionLog | None = None) -> None:
        self.log = log if log is not None else SessionLog()

    def record(
        self,
        target: Target,
        outcome: ProbeOutcome,
        state: TargetState,
        now: datetime,
    ) -> SessionEntry:
        """Append the observation; ``state`` must already include ``outcome``."""
        entry = SessionEntry(
            timestamp=now,
            target_name=target.name,
            engine=target.engine,
            status=outcome.status,
            elapsed_ms=outcome.elapsed_ms,
            error=outcome.error,
            # intervals are frozen values, so the tuple is a snapshot
            downtime_snapshot=tuple(state.intervals),
        )
        self.log.append(entry)
        return entry
