"""Tests for statutory rule tables."""

from datetime import date
from decimal import Decimal

import pytest

from hrms_kernel.calculators.rule_tables import (
    EIS_TABLE,
    SOCSO_TABLE,
    TAX_BRACKETS,
    bracket_tax,
    eis_step,
    epf_rates,
    is_public_holiday,
    public_holidays_in,
    socso_step,
    tax_bracket,
    weekdays_in_month,
)
from hrms_kernel.calculators.types import ResidentStatus
from hrms_kernel.config import RuleConfig


class TestEPFRates:
    """EPF rate selection by age, residency and wage."""

    def test_standard_rates_at_threshold(self):
        rates = epf_rates(35, ResidentStatus.MALAYSIAN, Decimal("5000"), RuleConfig())
        assert rates.ee_rate == Decimal("0.11")
        assert rates.er_rate == Decimal("0.13")

    def test_employer_rate_drops_above_threshold(self):
        rates = epf_rates(35, ResidentStatus.MALAYSIAN, Decimal("5000.01"), RuleConfig())
        assert rates.er_rate == Decimal("0.12")

    def test_age_sixty_uses_senior_rates(self):
        rates = epf_rates(60, ResidentStatus.MALAYSIAN, Decimal("4000"), RuleConfig())
        assert rates.ee_rate == Decimal("0")
        assert rates.er_rate == Decimal("0.04")

    def test_age_fifty_nine_uses_standard_rates(self):
        rates = epf_rates(59, ResidentStatus.MALAYSIAN, Decimal("4000"), RuleConfig())
        assert rates.ee_rate == Decimal("0.11")

    def test_foreign_worker_rates(self):
        rates = epf_rates(30, ResidentStatus.FOREIGN, Decimal("4000"), RuleConfig())
        assert rates.ee_rate == Decimal("0.02")
        assert rates.er_rate == Decimal("0.02")

    def test_ceiling_comes_from_config(self):
        config = RuleConfig(epf_ceiling=Decimal("15000"))
        rates = epf_rates(30, ResidentStatus.MALAYSIAN, Decimal("4000"), config)
        assert rates.ceiling == Decimal("15000")


class TestSocsoTable:
    """SOCSO first-category step table."""

    def test_table_is_contiguous(self):
        for previous, current in zip(SOCSO_TABLE, SOCSO_TABLE[1:]):
            assert current.min_wage == previous.max_wage

    def test_last_row_is_open_ended(self):
        assert SOCSO_TABLE[-1].max_wage is None
        assert SOCSO_TABLE[-1].min_wage == Decimal("6000")

    def test_known_rows(self):
        # Band (4200, 4300]
        assert socso_step(Decimal("4300")).ee == Decimal("21.25")
        assert socso_step(Decimal("4300")).er == Decimal("74.35")
        # Band (5900, 6000] and above
        assert socso_step(Decimal("6000")).ee == Decimal("29.75")
        assert socso_step(Decimal("10500")).er == Decimal("104.15")

    def test_band_upper_bound_is_inclusive(self):
        assert socso_step(Decimal("4300")) == socso_step(Decimal("4200.01"))
        assert socso_step(Decimal("4300.01")) != socso_step(Decimal("4300"))

    def test_zero_wage_contributes_nothing(self):
        step = socso_step(Decimal("0"))
        assert step.ee == Decimal("0")
        assert step.er == Decimal("0")

    def test_senior_pays_injury_only(self):
        step = socso_step(Decimal("4300"), age=60)
        assert step.ee == Decimal("0")
        # Employment-injury portion of the (4200, 4300] band
        assert step.er == Decimal("53.10")

    def test_employer_share_exceeds_employee_share(self):
        for row in SOCSO_TABLE:
            assert row.er >= row.ee


class TestEisTable:
    """EIS step table and exemptions."""

    def test_known_rows(self):
        assert eis_step(Decimal("4300")).ee == Decimal("8.50")
        assert eis_step(Decimal("10500")).ee == Decimal("11.90")
        assert eis_step(Decimal("10500")).er == Decimal("11.90")

    def test_age_fifty_seven_is_exempt(self):
        step = eis_step(Decimal("4300"), age=57)
        assert step.ee == Decimal("0")
        assert step.er == Decimal("0")

    def test_age_fifty_six_contributes(self):
        assert eis_step(Decimal("4300"), age=56).ee == Decimal("8.50")

    def test_foreign_worker_is_exempt(self):
        assert eis_step(Decimal("4300"), resident_status=ResidentStatus.FOREIGN).ee == Decimal("0")

    def test_shares_are_equal(self):
        for row in EIS_TABLE:
            assert row.ee == row.er


class TestTaxBrackets:
    """PCB bracket ladder."""

    @pytest.mark.parametrize(
        "income,expected_m",
        [
            (Decimal("5000"), Decimal("0")),
            (Decimal("5000.01"), Decimal("5000")),
            (Decimal("35000"), Decimal("20000")),
            (Decimal("36158.42"), Decimal("35000")),
            (Decimal("106958.42"), Decimal("100000")),
            (Decimal("2500000"), Decimal("2000000")),
        ],
    )
    def test_bracket_lookup(self, income, expected_m):
        assert tax_bracket(income).m == expected_m

    def test_spouse_rebate_only_in_low_brackets(self):
        rebated = [b for b in TAX_BRACKETS if b.b1 != b.b2]
        assert [b.m for b in rebated] == [Decimal("5000"), Decimal("20000")]
        for bracket in rebated:
            assert bracket.b2 == bracket.b1 - 400

    def test_tax_floored_at_zero(self):
        assert bracket_tax(Decimal("6000"), spouse_relief=False) == Decimal("0")

    def test_tax_in_middle_bracket(self):
        # (36158.42 - 35000) * 6% + 600
        assert bracket_tax(Decimal("36158.42"), spouse_relief=False) == Decimal("669.5052")


class TestCalendar:
    """Public holidays and weekday counts."""

    def test_merdeka_is_holiday(self):
        assert is_public_holiday(date(2025, 8, 31))
        assert not is_public_holiday(date(2025, 8, 30))

    def test_holidays_in_month_are_sorted(self):
        names = [name for _, name in public_holidays_in(2025, 1)]
        assert names == ["New Year's Day", "Chinese New Year", "Chinese New Year (Day 2)"]

    def test_weekdays_exclude_weekday_holidays(self):
        # January 2025 has 23 weekdays; 1, 29 and 30 Jan fall on weekdays.
        assert weekdays_in_month(2025, 1, exclude_holidays=False) == 23
        assert weekdays_in_month(2025, 1) == 20
