"""Unit tests for the downtime interval state machine."""

import itertools
from datetime import timedelta

import pytest

from dbmon.core.models import DowntimeInterval, Status, TargetState
from dbmon.services.availability import (
    Transition,
    apply_outcome,
    classify,
    open_interval,
    total_downtime,
)

from conftest import DOWN, UNKNOWN, UP, at


def _run(outcomes, start_ms=0, step_ms=1000):
    state = TargetState()
    states = []
    for i, outcome in enumerate(outcomes):
        state = apply_outcome(state, outcome, at(start_ms + i * step_ms))
        states.append(state)
    return states


class TestTransitions:
    def test_fresh_state(self):
        state = TargetState()
        assert state.current_status is None
        assert state.intervals == ()

    def test_initial_down_opens_interval(self):
        state = apply_outcome(TargetState(), DOWN, at(0))
        assert state.intervals == (DowntimeInterval(start=at(0)),)
        assert open_interval(state) is not None

    def test_up_down_up_yields_one_closed_interval(self):
        state = _run([UP, DOWN, UP])[-1]
        assert state.intervals == (DowntimeInterval(start=at(1000), end=at(2000)),)
        assert open_interval(state) is None

    def test_session_ending_while_down_leaves_open_interval(self):
        state = _run([UP, DOWN])[-1]
        assert state.intervals == (DowntimeInterval(start=at(1000)),)

    def test_down_down_keeps_single_open_interval(self):
        state = _run([DOWN, DOWN, DOWN])[-1]
        assert len(state.intervals) == 1
        assert state.intervals[0].start == at(0)
        assert state.intervals[0].is_open

    def test_repeated_up_is_a_noop(self):
        first = apply_outcome(TargetState(), UP, at(0))
        second = apply_outcome(first, UP, at(1000))
        assert first.intervals == second.intervals == ()

    def test_two_outages_are_two_intervals(self):
        state = _run([DOWN, UP, DOWN, UP])[-1]
        assert state.intervals == (
            DowntimeInterval(start=at(0), end=at(1000)),
            DowntimeInterval(start=at(2000), end=at(3000)),
        )

    def test_previous_state_is_not_mutated(self):
        before = apply_outcome(TargetState(), DOWN, at(0))
        after = apply_outcome(before, UP, at(1000))
        assert before.intervals[0].is_open
        assert after.intervals[0].end == at(1000)

    def test_start_is_clamped_when_clock_steps_back(self):
        state = _run([DOWN, UP])[-1]
        after = apply_outcome(state, DOWN, at(500))

        assert after.current_status is Status.DOWN
        assert after.intervals == (
            DowntimeInterval(start=at(0), end=at(1000)),
            DowntimeInterval(start=at(1000)),
        )

    def test_end_is_clamped_to_start(self):
        state = apply_outcome(TargetState(), DOWN, at(1000))
        after = apply_outcome(state, UP, at(400))
        assert after.intervals == (DowntimeInterval(start=at(1000), end=at(1000)),)


class TestUnknown:
    @pytest.mark.parametrize("previous", [None, UP, DOWN, UNKNOWN])
    def test_unknown_never_touches_intervals(self, previous):
        state = TargetState()
        if previous is not None:
            state = apply_outcome(state, previous, at(0))
        after = apply_outcome(state, UNKNOWN, at(1000))
        assert after.current_status is UNKNOWN.status
        assert after.intervals == state.intervals

    def test_unknown_after_down_keeps_interval_open(self):
        state = _run([DOWN, UNKNOWN])[-1]
        assert state.intervals == (DowntimeInterval(start=at(0)),)

    def test_down_unknown_down_is_one_outage(self):
        state = _run([DOWN, UNKNOWN, DOWN])[-1]
        assert len(state.intervals) == 1
        assert state.intervals[0].is_open

    def test_down_unknown_up_closes_the_outage(self):
        state = _run([DOWN, UNKNOWN, UP])[-1]
        assert state.intervals == (DowntimeInterval(start=at(0), end=at(2000)),)

    def test_classify(self):
        assert classify(TargetState(), UNKNOWN.status) is Transition.NONE
        assert classify(TargetState(), DOWN.status) is Transition.WENT_DOWN
        down = apply_outcome(TargetState(), DOWN, at(0))
        assert classify(down, UP.status) is Transition.RECOVERED
        assert classify(down, DOWN.status) is Transition.NONE


class TestInvariants:
    def test_at_most_one_open_interval_for_every_prefix(self):
        for sequence in itertools.product([UP, DOWN, UNKNOWN], repeat=5):
            for state in _run(sequence):
                open_count = sum(1 for interval in state.intervals if interval.is_open)
                assert open_count <= 1
                starts = [interval.start for interval in state.intervals]
                assert starts == sorted(starts)
                for interval in state.intervals:
                    assert interval.end is None or interval.end >= interval.start


class TestTotalDowntime:
    def test_no_intervals(self):
        assert total_downtime(TargetState(), at(5000)) == timedelta(0)

    def test_closed_plus_open(self):
        state = _run([DOWN, UP, UP, DOWN])[-1]
        # closed [0, 1000) plus open from 3000
        assert total_downtime(state, at(4500)) == timedelta(milliseconds=1000 + 1500)

    def test_grows_while_down(self):
        state = _run([DOWN])[-1]
        samples = [total_downtime(state, at(ms)) for ms in (0, 250, 1000, 4000)]
        assert samples == sorted(samples)
        assert samples[-1] == timedelta(seconds=4)

    def test_recomputed_on_each_call(self):
        state = _run([UP, DOWN])[-1]
        assert total_downtime(state, at(2000)) == timedelta(seconds=1)
        assert total_downtime(state, at(3000)) == timedelta(seconds=2)
