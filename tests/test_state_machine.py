"""Tests for the daily clock state machine."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from hrms_kernel.attendance.state_machine import ClockEvent, ClockPhase, ClockStateMachine
from hrms_kernel.exceptions import InvalidClockTransitionError, NonMonotonicTimestampError


def record(in_1=None, out_1=None, in_2=None, out_2=None, status="working"):
    return SimpleNamespace(
        clock_in_1=in_1, clock_out_1=out_1, clock_in_2=in_2, clock_out_2=out_2, status=status
    )


T0 = datetime(2025, 1, 6, 9, 0)
T1 = datetime(2025, 1, 6, 13, 0)
T2 = datetime(2025, 1, 6, 14, 0)
T3 = datetime(2025, 1, 6, 18, 0)


class TestTransitions:
    """Allowed and rejected transitions."""

    @pytest.mark.parametrize(
        "phase,event,expected",
        [
            (ClockPhase.NOT_STARTED, ClockEvent.CLOCK_IN_1, ClockPhase.WORKING),
            (ClockPhase.WORKING, ClockEvent.CLOCK_OUT_1, ClockPhase.ON_BREAK),
            (ClockPhase.WORKING, ClockEvent.CLOCK_OUT_2, ClockPhase.COMPLETED),
            (ClockPhase.ON_BREAK, ClockEvent.CLOCK_IN_2, ClockPhase.WORKING_2),
            (ClockPhase.WORKING_2, ClockEvent.CLOCK_OUT_2, ClockPhase.COMPLETED),
        ],
    )
    def test_valid(self, phase, event, expected):
        assert ClockStateMachine.next_phase(phase, event) == expected

    def test_out_before_in_rejected(self):
        with pytest.raises(InvalidClockTransitionError) as exc_info:
            ClockStateMachine.next_phase(ClockPhase.NOT_STARTED, ClockEvent.CLOCK_OUT_1)
        assert exc_info.value.reason == "clock_in_1 must come first"

    def test_closed_day_accepts_nothing(self):
        for phase in (ClockPhase.COMPLETED, ClockPhase.AUTO_CLOSED):
            assert ClockStateMachine.get_next_events(phase) == []
            with pytest.raises(InvalidClockTransitionError):
                ClockStateMachine.next_phase(phase, ClockEvent.CLOCK_OUT_2)

    def test_second_clock_in_1_rejected(self):
        assert not ClockStateMachine.can_transition(ClockPhase.WORKING, ClockEvent.CLOCK_IN_1)

    def test_working_2_persists_as_working(self):
        assert ClockPhase.WORKING_2.status == "working"
        assert ClockPhase.ON_BREAK.status == "on_break"


class TestPhaseOf:
    def test_from_timestamps(self):
        assert ClockStateMachine.phase_of(None) == ClockPhase.NOT_STARTED
        assert ClockStateMachine.phase_of(record(T0)) == ClockPhase.WORKING
        assert ClockStateMachine.phase_of(record(T0, T1)) == ClockPhase.ON_BREAK
        assert ClockStateMachine.phase_of(record(T0, T1, T2)) == ClockPhase.WORKING_2
        assert ClockStateMachine.phase_of(record(T0, T1, T2, T3)) == ClockPhase.COMPLETED

    def test_auto_closed_status_wins(self):
        rec = record(T0, T1, status="auto_closed")
        assert ClockStateMachine.phase_of(rec) == ClockPhase.AUTO_CLOSED


class TestValidateEvent:
    """Ordering checks against the predecessor event."""

    def test_full_day(self):
        rec = record()
        assert ClockStateMachine.validate_event(rec, ClockEvent.CLOCK_IN_1, T0) == ClockPhase.WORKING
        rec.clock_in_1 = T0
        assert ClockStateMachine.validate_event(rec, ClockEvent.CLOCK_OUT_1, T1) == ClockPhase.ON_BREAK
        rec.clock_out_1 = T1
        assert ClockStateMachine.validate_event(rec, ClockEvent.CLOCK_IN_2, T2) == ClockPhase.WORKING_2
        rec.clock_in_2 = T2
        assert ClockStateMachine.validate_event(rec, ClockEvent.CLOCK_OUT_2, T3) == ClockPhase.COMPLETED

    def test_skipped_break_compares_with_clock_in_1(self):
        assert ClockStateMachine.predecessor(record(T0), ClockEvent.CLOCK_OUT_2) == ("clock_in_1", T0)
        assert (
            ClockStateMachine.validate_event(record(T0), ClockEvent.CLOCK_OUT_2, T3)
            == ClockPhase.COMPLETED
        )

    def test_equal_timestamp_rejected(self):
        with pytest.raises(NonMonotonicTimestampError) as exc_info:
            ClockStateMachine.validate_event(record(T0), ClockEvent.CLOCK_OUT_1, T0)
        assert exc_info.value.predecessor == "clock_in_1"

    def test_earlier_timestamp_rejected(self):
        with pytest.raises(NonMonotonicTimestampError):
            ClockStateMachine.validate_event(record(T0, T1), ClockEvent.CLOCK_IN_2, T0)

    def test_overnight_timestamp_accepted(self):
        rec = record(datetime(2025, 1, 6, 22, 0))
        next_morning = datetime(2025, 1, 7, 2, 0)
        assert (
            ClockStateMachine.validate_event(rec, ClockEvent.CLOCK_OUT_1, next_morning)
            == ClockPhase.ON_BREAK
        )

    def test_event_slots(self):
        assert ClockEvent.CLOCK_IN_1.slot == "in_1"
        assert ClockEvent.CLOCK_OUT_2.slot == "out_2"
