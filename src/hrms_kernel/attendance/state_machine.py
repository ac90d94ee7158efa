"""Daily clock state machine with transition validation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from hrms_kernel.exceptions import InvalidClockTransitionError, NonMonotonicTimestampError

if TYPE_CHECKING:
    from hrms_kernel.models import ClockRecord


class ClockEvent(str, Enum):
    """The four clock events, in workflow order."""

    CLOCK_IN_1 = "clock_in_1"
    CLOCK_OUT_1 = "clock_out_1"
    CLOCK_IN_2 = "clock_in_2"
    CLOCK_OUT_2 = "clock_out_2"

    @property
    def slot(self) -> str:
        """Column suffix shared by photo_/location_/address_/face_detected_ fields."""
        direction, session = self.value.split("_")[1:]
        return f"{direction}_{session}"


class ClockPhase(str, Enum):
    """Where a record is in the day. ``WORKING_2`` is the post-break session."""

    NOT_STARTED = "not_started"
    WORKING = "working"
    ON_BREAK = "on_break"
    WORKING_2 = "working_2"
    COMPLETED = "completed"
    AUTO_CLOSED = "auto_closed"

    @property
    def status(self) -> str:
        """Persisted status; both working sessions store 'working'."""
        if self is ClockPhase.WORKING_2:
            return ClockPhase.WORKING.value
        return self.value


class ClockStateMachine:
    """State machine for clock events.

    Allowed transitions:
    - not_started -clock_in_1-> working
    - working -clock_out_1-> on_break
    - working -clock_out_2-> completed (break skipped)
    - on_break -clock_in_2-> working_2
    - working_2 -clock_out_2-> completed
    """

    VALID_TRANSITIONS: dict[ClockPhase, dict[ClockEvent, ClockPhase]] = {
        ClockPhase.NOT_STARTED: {ClockEvent.CLOCK_IN_1: ClockPhase.WORKING},
        ClockPhase.WORKING: {
            ClockEvent.CLOCK_OUT_1: ClockPhase.ON_BREAK,
            ClockEvent.CLOCK_OUT_2: ClockPhase.COMPLETED,
        },
        ClockPhase.ON_BREAK: {ClockEvent.CLOCK_IN_2: ClockPhase.WORKING_2},
        ClockPhase.WORKING_2: {ClockEvent.CLOCK_OUT_2: ClockPhase.COMPLETED},
        ClockPhase.COMPLETED: {},
        ClockPhase.AUTO_CLOSED: {},
    }

    # Phases an auto clock-out may close.
    OPEN_PHASES = {ClockPhase.WORKING, ClockPhase.ON_BREAK, ClockPhase.WORKING_2}

    @classmethod
    def phase_of(cls, record: ClockRecord | None) -> ClockPhase:
        """Derive the phase from the persisted timestamps."""
        if record is None or record.clock_in_1 is None:
            return ClockPhase.NOT_STARTED
        if record.status == ClockPhase.AUTO_CLOSED.value:
            return ClockPhase.AUTO_CLOSED
        if record.clock_out_2 is not None:
            return ClockPhase.COMPLETED
        if record.clock_in_2 is not None:
            return ClockPhase.WORKING_2
        if record.clock_out_1 is not None:
            return ClockPhase.ON_BREAK
        return ClockPhase.WORKING

    @classmethod
    def can_transition(cls, phase: ClockPhase, event: ClockEvent) -> bool:
        return event in cls.VALID_TRANSITIONS.get(phase, {})

    @classmethod
    def next_phase(cls, phase: ClockPhase, event: ClockEvent) -> ClockPhase:
        """Phase after ``event``, raising InvalidClockTransitionError if not allowed."""
        allowed = cls.VALID_TRANSITIONS.get(phase, {})
        if event not in allowed:
            reason = None
            if phase is ClockPhase.NOT_STARTED:
                reason = "clock_in_1 must come first"
            elif not allowed:
                reason = "day already closed"
            raise InvalidClockTransitionError(phase.value, event.value, reason)
        return allowed[event]

    @classmethod
    def get_next_events(cls, phase: ClockPhase) -> list[ClockEvent]:
        return list(cls.VALID_TRANSITIONS.get(phase, {}))

    @staticmethod
    def predecessor(record: ClockRecord, event: ClockEvent) -> tuple[str, datetime | None]:
        """The event that must precede ``event`` and its timestamp."""
        if event is ClockEvent.CLOCK_OUT_1:
            return ClockEvent.CLOCK_IN_1.value, record.clock_in_1
        if event is ClockEvent.CLOCK_IN_2:
            return ClockEvent.CLOCK_OUT_1.value, record.clock_out_1
        if event is ClockEvent.CLOCK_OUT_2:
            if record.clock_in_2 is not None:
                return ClockEvent.CLOCK_IN_2.value, record.clock_in_2
            return ClockEvent.CLOCK_IN_1.value, record.clock_in_1
        return "", None

    @classmethod
    def validate_event(
        cls, record: ClockRecord | None, event: ClockEvent, timestamp: datetime
    ) -> ClockPhase:
        """Check transition and ordering; return the phase the record moves to."""
        phase = cls.phase_of(record)
        target = cls.next_phase(phase, event)
        if record is not None and event is not ClockEvent.CLOCK_IN_1:
            name, previous = cls.predecessor(record, event)
            if previous is None:
                raise InvalidClockTransitionError(phase.value, event.value, f"{name} missing")
            if timestamp <= previous:
                raise NonMonotonicTimestampError(event.value, name, timestamp, previous)
        return target
