"""Work-minute and overtime computation for a clock record."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Union

from hrms_kernel.config import AttendanceConfig

MINUTES_PER_DAY = 24 * 60

Stamp = Union[datetime, time, None]


@dataclass(frozen=True)
class DailyTotals:
    minutes: int
    overtime_minutes: int
    invalid: bool
    reason: str | None = None
    complete: bool = True


def _offsets(work_date: date | None, stamps: list[Stamp]) -> list[int | None]:
    """Minutes since midnight of the work date for each timestamp.

    Datetimes are placed exactly. Bare wall-clock times are unrolled: a time
    earlier than the previous one is taken as the next day.
    """
    offsets: list[int | None] = []
    day_shift = 0
    last: int | None = None
    for stamp in stamps:
        if stamp is None:
            offsets.append(None)
            continue
        if isinstance(stamp, datetime):
            base = work_date or stamp.date()
            value = (stamp.date() - base).days * MINUTES_PER_DAY + stamp.hour * 60 + stamp.minute
        else:
            value = day_shift + stamp.hour * 60 + stamp.minute
            if last is not None and value < last:
                day_shift += MINUTES_PER_DAY
                value += MINUTES_PER_DAY
        offsets.append(value)
        last = value
    return offsets


def compute_daily_totals(record: Any, config: AttendanceConfig | None = None) -> DailyTotals:
    """Total work minutes and overtime for a record's four timestamps.

    A pair with out <= in, a session longer than ``max_session_minutes`` or
    a zero-length day marks the record invalid with minutes and overtime 0.
    Records without a closing event are reported with ``complete=False``.
    """
    config = config or AttendanceConfig()
    in_1, out_1, in_2, out_2 = _offsets(
        getattr(record, "work_date", None),
        [record.clock_in_1, record.clock_out_1, record.clock_in_2, record.clock_out_2],
    )

    if in_1 is None:
        return DailyTotals(0, 0, invalid=False, complete=False)

    sessions: list[tuple[int, int | None]] = []
    if out_1 is None and in_2 is None:
        sessions.append((in_1, out_2))
    elif out_1 is not None and in_2 is None:
        if out_2 is not None:
            return _invalid("clock_out_2 recorded without clock_in_2")
        sessions.append((in_1, out_1))
    elif out_1 is not None and in_2 is not None:
        sessions.append((in_1, out_1))
        sessions.append((in_2, out_2))
    else:
        return _invalid("clock_in_2 recorded without clock_out_1")

    total = 0
    complete = True
    for start, end in sessions:
        if end is None:
            complete = False
            continue
        length = end - start
        if length <= 0:
            return _invalid("clock-out not after clock-in")
        if length > config.max_session_minutes:
            return _invalid(f"session of {length} minutes exceeds {config.max_session_minutes}")
        total += length

    # A day that stopped at the break is closed only when auto-closed.
    if out_2 is None and getattr(record, "status", None) != "auto_closed":
        complete = False

    if complete and total == 0:
        return _invalid("zero-length day")

    overtime = max(0, total - config.daily_standard_minutes)
    return DailyTotals(total, overtime, invalid=False, complete=complete)


def _invalid(reason: str) -> DailyTotals:
    return DailyTotals(0, 0, invalid=True, reason=reason)
