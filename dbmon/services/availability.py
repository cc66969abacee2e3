from __future__ import annotations

import enum
from dataclasses import replace
from datetime import datetime, timedelta

from dbmon.core.models import DowntimeInterval, ProbeOutcome, Status, TargetState


class Transition(str, enum.Enum):
    WENT_DOWN = "went_down"
    RECOVERED = "recovered"
    NONE = "none"


def classify(state: TargetState, new: Status) -> Transition:
    """Interval effect of observing ``new`` on top of ``state``.

    UNKNOWN is not downtime: it neither opens an interval nor closes one, so a
    target that goes DOWN -> UNKNOWN keeps its interval open. A later DOWN
    continues that interval and a later UP closes it.
    """
    current = open_interval(state)
    if new is Status.DOWN and current is None:
        return Transition.WENT_DOWN
    if new is Status.UP and current is not None:
        return Transition.RECOVERED
    return Transition.NONE


def apply_outcome(state: TargetState, outcome: ProbeOutcome, now: datetime) -> TargetState:
    transition = classify(state, outcome.status)
    intervals = state.intervals

    if transition is Transition.WENT_DOWN:
        start = now
        if intervals and intervals[-1].end is not None:
            # the wall clock may step back; intervals stay ordered and disjoint
            start = max(now, intervals[-1].end)
        intervals = intervals + (DowntimeInterval(start=start),)
    elif transition is Transition.RECOVERED:
        current = intervals[-1]
        intervals = intervals[:-1] + (replace(current, end=max(now, current.start)),)

    return TargetState(current_status=outcome.status, intervals=intervals)


def open_interval(state: TargetState) -> DowntimeInterval | None:
    # intervals are chronological and only the newest one can still be open
    if state.intervals and state.intervals[-1].is_open:
        return state.intervals[-1]
    return None


def total_downtime(state: TargetState, now: datetime) -> timedelta:
    total = timedelta(0)
    for interval in state.intervals:
        end = interval.end if interval.end is not None else now
        if end > interval.start:
            total += end - interval.start
    return total
