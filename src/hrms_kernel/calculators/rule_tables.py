"""Statutory rule tables: EPF rates, SOCSO/EIS step tables, PCB brackets, holidays.

Everything here is process-wide immutable data. Lookups are pure functions of
their arguments and the supplied ``RuleConfig``.
"""

from __future__ import annotations

import calendar
from bisect import bisect_left
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from hrms_kernel.calculators.money import ZERO, round_to_step
from hrms_kernel.calculators.types import EPFRates, ResidentStatus, StepContribution
from hrms_kernel.config import RuleConfig

EPF_EE_RATE = Decimal("0.11")
EPF_ER_RATE_LOW = Decimal("0.13")
EPF_ER_RATE_HIGH = Decimal("0.12")
EPF_SENIOR_ER_RATE = Decimal("0.04")
EPF_FOREIGN_RATE = Decimal("0.02")
EPF_SENIOR_AGE = 60

SOCSO_SENIOR_AGE = 60
EIS_EXEMPT_AGE = 57

SOCSO_INJURY_RATE = Decimal("0.0125")
SOCSO_INVALIDITY_RATE = Decimal("0.005")
EIS_RATE = Decimal("0.002")
CONTRIBUTION_STEP = Decimal("0.05")

# Upper bound of each contribution band; bands are (previous, upper].
_LOW_BAND_UPPERS = (30, 50, 70, 100, 140, 200, 300, 400)
STEP_TABLE_TOP = 6000


@dataclass(frozen=True)
class StepRow:
    """One row of a step table covering wages in (min_wage, max_wage]."""

    min_wage: Decimal
    max_wage: Decimal | None
    ee: Decimal
    er: Decimal
    er_injury: Decimal = ZERO


def _band_bounds() -> list[tuple[Decimal, Decimal]]:
    uppers = list(_LOW_BAND_UPPERS) + list(range(500, STEP_TABLE_TOP + 1, 100))
    bounds = []
    lower = 0
    for upper in uppers:
        bounds.append((Decimal(lower), Decimal(upper)))
        lower = upper
    return bounds


def _build_socso_table() -> tuple[StepRow, ...]:
    """First-category SOCSO table, priced at each band's midpoint."""
    rows = []
    for lower, upper in _band_bounds():
        mid = (lower + upper) / 2
        invalidity = round_to_step(mid * SOCSO_INVALIDITY_RATE, CONTRIBUTION_STEP)
        injury = round_to_step(mid * SOCSO_INJURY_RATE, CONTRIBUTION_STEP)
        rows.append(StepRow(lower, upper, invalidity, injury + invalidity, injury))
    top = rows[-1]
    rows.append(StepRow(top.max_wage, None, top.ee, top.er, top.er_injury))
    return tuple(rows)


def _build_eis_table() -> tuple[StepRow, ...]:
    rows = []
    for lower, upper in _band_bounds():
        share = round_to_step((lower + upper) / 2 * EIS_RATE, CONTRIBUTION_STEP)
        rows.append(StepRow(lower, upper, share, share))
    top = rows[-1]
    rows.append(StepRow(top.max_wage, None, top.ee, top.er))
    return tuple(rows)


SOCSO_TABLE: tuple[StepRow, ...] = _build_socso_table()
EIS_TABLE: tuple[StepRow, ...] = _build_eis_table()


def _step_lookup(table: tuple[StepRow, ...], wage: Decimal) -> StepRow | None:
    if wage <= 0:
        return None
    uppers = [row.max_wage for row in table[:-1]]
    idx = bisect_left(uppers, wage)
    return table[idx]


def epf_rates(
    age: int,
    resident_status: ResidentStatus,
    wage: Decimal,
    config: RuleConfig,
) -> EPFRates:
    """Employee/employer EPF rates for an age band and residency.

    The employer rate steps down from 13% to 12% once the wage exceeds
    ``epf_er_threshold``.
    """
    if age >= EPF_SENIOR_AGE:
        return EPFRates(ZERO, EPF_SENIOR_ER_RATE, config.epf_ceiling)
    if resident_status == ResidentStatus.FOREIGN:
        return EPFRates(EPF_FOREIGN_RATE, EPF_FOREIGN_RATE, config.epf_ceiling)
    er_rate = EPF_ER_RATE_LOW if wage <= config.epf_er_threshold else EPF_ER_RATE_HIGH
    return EPFRates(EPF_EE_RATE, er_rate, config.epf_ceiling)


def socso_step(
    wage: Decimal,
    age: int = 0,
    resident_status: ResidentStatus = ResidentStatus.MALAYSIAN,
) -> StepContribution:
    """SOCSO contribution for a monthly wage.

    From 60 (and for foreign workers) only the employer's employment-injury
    portion is payable.
    """
    row = _step_lookup(SOCSO_TABLE, wage)
    if row is None:
        return StepContribution(ZERO, ZERO)
    if age >= SOCSO_SENIOR_AGE or resident_status == ResidentStatus.FOREIGN:
        return StepContribution(ZERO, row.er_injury)
    return StepContribution(row.ee, row.er)


def eis_step(
    wage: Decimal,
    age: int = 0,
    resident_status: ResidentStatus = ResidentStatus.MALAYSIAN,
) -> StepContribution:
    """EIS contribution for a monthly wage; zero from age 57 or for foreign workers."""
    if age >= EIS_EXEMPT_AGE or resident_status == ResidentStatus.FOREIGN:
        return StepContribution(ZERO, ZERO)
    row = _step_lookup(EIS_TABLE, wage)
    if row is None:
        return StepContribution(ZERO, ZERO)
    return StepContribution(row.ee, row.er)


@dataclass(frozen=True)
class TaxBracket:
    """One rung of the PCB ladder.

    ``b1`` applies to single taxpayers and those whose spouse works,
    ``b2`` to a married taxpayer whose spouse does not work.
    """

    min_income: Decimal
    max_income: Decimal | None
    m: Decimal
    r: Decimal
    b1: Decimal
    b2: Decimal

    def base_for(self, spouse_relief: bool) -> Decimal:
        return self.b2 if spouse_relief else self.b1


def _bracket(lo: int, hi: int | None, m: int, r: str, b1: int, rebate: bool = False) -> TaxBracket:
    b = Decimal(b1)
    return TaxBracket(
        Decimal(lo),
        Decimal(hi) if hi is not None else None,
        Decimal(m),
        Decimal(r),
        b,
        b - 400 if rebate else b,
    )


# LHDN computerised-formula brackets, year of assessment 2023 onwards.
TAX_BRACKETS: tuple[TaxBracket, ...] = (
    _bracket(0, 5000, 0, "0", 0),
    _bracket(5000, 20000, 5000, "0.01", -400, rebate=True),
    _bracket(20000, 35000, 20000, "0.03", -250, rebate=True),
    _bracket(35000, 50000, 35000, "0.06", 600),
    _bracket(50000, 70000, 50000, "0.11", 1500),
    _bracket(70000, 100000, 70000, "0.19", 3700),
    _bracket(100000, 400000, 100000, "0.25", 9400),
    _bracket(400000, 600000, 400000, "0.26", 84400),
    _bracket(600000, 2000000, 600000, "0.28", 136400),
    _bracket(2000000, None, 2000000, "0.30", 528400),
)


def tax_bracket(chargeable_income: Decimal) -> TaxBracket:
    """Bracket whose (min, max] range contains the chargeable income."""
    if chargeable_income <= TAX_BRACKETS[0].max_income:
        return TAX_BRACKETS[0]
    for bracket in TAX_BRACKETS[1:]:
        if bracket.max_income is None or chargeable_income <= bracket.max_income:
            return bracket
    return TAX_BRACKETS[-1]


def bracket_tax(chargeable_income: Decimal, spouse_relief: bool) -> Decimal:
    """Annual tax on a chargeable income, floored at zero."""
    bracket = tax_bracket(chargeable_income)
    tax = (chargeable_income - bracket.m) * bracket.r + bracket.base_for(spouse_relief)
    return max(ZERO, tax)


def _holidays(year: int, entries: list[tuple[int, int, str]]) -> dict[date, str]:
    return {date(year, month, day): name for month, day, name in entries}


PUBLIC_HOLIDAYS: dict[int, dict[date, str]] = {
    2025: _holidays(2025, [
        (1, 1, "New Year's Day"),
        (1, 29, "Chinese New Year"),
        (1, 30, "Chinese New Year (Day 2)"),
        (3, 31, "Hari Raya Aidilfitri"),
        (4, 1, "Hari Raya Aidilfitri (Day 2)"),
        (5, 1, "Labour Day"),
        (5, 12, "Wesak Day"),
        (6, 2, "Yang di-Pertuan Agong Birthday"),
        (6, 7, "Hari Raya Haji"),
        (6, 27, "Awal Muharram"),
        (8, 31, "Merdeka Day"),
        (9, 5, "Maulidur Rasul"),
        (9, 16, "Malaysia Day"),
        (10, 20, "Deepavali"),
        (12, 25, "Christmas Day"),
    ]),
    2026: _holidays(2026, [
        (1, 1, "New Year's Day"),
        (2, 17, "Chinese New Year"),
        (2, 18, "Chinese New Year (Day 2)"),
        (3, 21, "Hari Raya Aidilfitri"),
        (3, 22, "Hari Raya Aidilfitri (Day 2)"),
        (5, 1, "Labour Day"),
        (5, 27, "Hari Raya Haji"),
        (5, 31, "Wesak Day"),
        (6, 1, "Yang di-Pertuan Agong Birthday"),
        (6, 17, "Awal Muharram"),
        (8, 25, "Maulidur Rasul"),
        (8, 31, "Merdeka Day"),
        (9, 16, "Malaysia Day"),
        (11, 8, "Deepavali"),
        (12, 25, "Christmas Day"),
    ]),
}


def is_public_holiday(day: date) -> bool:
    return day in PUBLIC_HOLIDAYS.get(day.year, {})


def public_holidays_in(year: int, month: int) -> list[tuple[date, str]]:
    """Holidays falling in a month, in date order."""
    return sorted(
        (d, name) for d, name in PUBLIC_HOLIDAYS.get(year, {}).items() if d.month == month
    )


def weekdays_in_month(year: int, month: int, exclude_holidays: bool = True) -> int:
    """Monday-to-Friday count for a month, less weekday public holidays."""
    _, last = calendar.monthrange(year, month)
    count = 0
    for day_num in range(1, last + 1):
        day = date(year, month, day_num)
        if day.weekday() >= 5:
            continue
        if exclude_holidays and is_public_holiday(day):
            continue
        count += 1
    return count
