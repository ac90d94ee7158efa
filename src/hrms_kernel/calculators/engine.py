"""Payroll assembler: earnings in, statutory deductions and net pay out.

The assembler is a pure function of its inputs. Contributions come from
``calculate_contributions`` and tax from ``PCBCalculator``; persistence and
YTD lookup belong to ``PayrollService``.
"""

from __future__ import annotations

import calendar
import hashlib
import json
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Sequence

from hrms_kernel.calculators.contributions import calculate_contributions, epf_contribution
from hrms_kernel.calculators.identity import parse_identity
from hrms_kernel.calculators.line_builder import PayslipLine, PayslipLineBuilder
from hrms_kernel.calculators.money import ZERO, round_to_cents
from hrms_kernel.calculators.pcb import PCBCalculator
from hrms_kernel.calculators.rule_tables import weekdays_in_month
from hrms_kernel.calculators.types import (
    AdvanceBalance,
    AdvanceDeduction,
    EarningsInput,
    EmployeeProfile,
    PCBInput,
    PCBResult,
    YTDAccumulators,
)
from hrms_kernel.config import RuleConfig
from hrms_kernel.exceptions import InputValidationError

logger = logging.getLogger(__name__)

# Fields compared by reconcile_with_slip, in payslip order.
SLIP_FIELDS = (
    "gross",
    "epf_ee",
    "epf_er",
    "socso_ee",
    "socso_er",
    "eis_ee",
    "eis_er",
    "pcb",
    "net",
)


@dataclass(frozen=True)
class PayrollItemResult:
    """A computed payroll item, ready to persist."""

    employee_id: int
    year: int
    month: int
    age: int

    basic: Decimal
    commission: Decimal
    fixed_allowance: Decimal
    overtime_amount: Decimal
    ph_pay: Decimal
    bonus: Decimal
    incentive: Decimal
    claims: Decimal

    gross: Decimal
    statutory_base: Decimal
    contribution_wage: Decimal
    normal_remuneration: Decimal
    additional_remuneration: Decimal

    epf_ee: Decimal
    epf_er: Decimal
    socso_ee: Decimal
    socso_er: Decimal
    eis_ee: Decimal
    eis_er: Decimal
    pcb: Decimal
    zakat: Decimal

    unpaid_leave_deduction: Decimal
    other_deductions: Decimal
    advance_deducted: Decimal
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal
    net: Decimal

    ytd: YTDAccumulators
    pcb_breakdown: PCBResult
    advance_deductions: tuple[AdvanceDeduction, ...] = ()
    lines: tuple[PayslipLine, ...] = ()
    fingerprint: str = ""

    @property
    def taxable_gross(self) -> Decimal:
        return self.normal_remuneration + self.additional_remuneration

    def money_fields(self) -> dict[str, Decimal]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if isinstance(getattr(self, f.name), Decimal)
        }

    def to_canonical_dict(self) -> dict[str, Any]:
        """Canonical form of inputs and outputs used for the fingerprint."""
        return {
            "employee_id": self.employee_id,
            "period": f"{self.year:04d}-{self.month:02d}",
            "age": self.age,
            "money": {k: str(v) for k, v in self.money_fields().items()},
            "ytd": self.ytd.to_dict(),
            "pcb": self.pcb_breakdown.to_dict(),
            "advances": [
                [a.advance_id, str(a.amount), str(a.remaining_after)]
                for a in self.advance_deductions
            ],
            "lines": [PayslipLineBuilder.compute_line_hash(line) for line in self.lines],
        }


@dataclass(frozen=True)
class SlipDiscrepancy:
    """A field where a legacy slip disagrees with the computed item."""

    field: str
    computed: Decimal
    slip: Decimal

    @property
    def delta(self) -> Decimal:
        return self.slip - self.computed


@dataclass
class ReconciliationReport:
    discrepancies: list[SlipDiscrepancy] = field(default_factory=list)
    epf_swapped: bool = False

    @property
    def matches(self) -> bool:
        return not self.discrepancies and not self.epf_swapped


class PayrollAssembler:
    """Assembles one employee-month payroll item.

    Composition:
    - gross = basic + commission + allowance + overtime + PH pay + bonus + incentive + claims
    - statutory base (EPF) = basic + commission + bonus, plus overtime / allowance /
      incentive when the matching ``statutory_on_*`` flag is set
    - SOCSO/EIS wage = gross less claims
    - PCB: Y1 = basic plus flagged extras, Yt = commission + bonus
    - net = gross - (EPF + SOCSO + EIS + PCB + unpaid + other + advances)

    Optional deductions are capped by what is left after statutory deductions,
    so net never goes negative.
    """

    def __init__(self, config: RuleConfig):
        self.config = config
        self.pcb_calculator = PCBCalculator(config)

    def compute_payroll_item(
        self,
        employee: EmployeeProfile,
        year: int,
        month: int,
        earnings: EarningsInput,
        ytd: YTDAccumulators | None = None,
        advances: Sequence[AdvanceBalance] = (),
    ) -> PayrollItemResult:
        if not 1 <= month <= 12:
            raise InputValidationError(f"month {month} out of range", "month")
        employee.validate()
        earnings.validate()
        ytd = ytd or YTDAccumulators()
        cfg = self.config

        period_end = date(year, month, calendar.monthrange(year, month)[1])
        age = parse_identity(employee.ic_number, employee.date_of_birth, period_end).age

        working_days = self._working_days(earnings, year, month)
        basic = self._basic(employee, earnings)
        daily_rate = basic / working_days if basic > 0 else ZERO
        hourly_rate = (
            (employee.hourly_rate or cfg.part_time_hourly_rate)
            if employee.is_part_time
            else daily_rate / cfg.standard_work_hours
        )

        if earnings.overtime_amount is not None:
            overtime = round_to_cents(earnings.overtime_amount)
        else:
            overtime = round_to_cents(earnings.overtime_hours * hourly_rate * cfg.ot_multiplier)
        ph_pay = ZERO
        if not employee.is_part_time:
            ph_pay = round_to_cents(daily_rate * earnings.ph_days_worked * cfg.ph_multiplier)

        commission = round_to_cents(earnings.commission)
        allowance = round_to_cents(earnings.fixed_allowance)
        bonus = round_to_cents(earnings.bonus)
        incentive = round_to_cents(earnings.incentive)
        claims = round_to_cents(earnings.claims)

        gross = basic + commission + allowance + overtime + ph_pay + bonus + incentive + claims

        flagged = ZERO
        if cfg.statutory_on_ot:
            flagged += overtime + ph_pay
        if cfg.statutory_on_allowance:
            flagged += allowance
        if cfg.statutory_on_incentive:
            flagged += incentive
        normal_remuneration = basic + flagged
        additional_remuneration = commission + bonus
        statutory_base = normal_remuneration + additional_remuneration
        contribution_wage = gross - claims

        contributions = calculate_contributions(
            statutory_base, contribution_wage, age, employee.resident_status, cfg
        )
        epf_on_normal = min(
            epf_contribution(normal_remuneration, age, employee.resident_status, cfg).ee,
            contributions.epf_ee,
        )

        pcb_result = self.pcb_calculator.calculate(
            PCBInput(
                month=month,
                normal_remuneration=normal_remuneration,
                additional_remuneration=additional_remuneration,
                epf_on_normal=epf_on_normal,
                epf_on_additional=contributions.epf_ee - epf_on_normal,
                socso_eis_current=contributions.socso_ee + contributions.eis_ee,
                ytd=ytd,
                current_month_zakat=earnings.current_month_zakat,
                marital_status=employee.marital_status,
                spouse_working=employee.spouse_working,
                spouse_disabled=employee.spouse_disabled,
                children_count=employee.children_count,
                disabled=employee.disabled,
            )
        )

        available = gross - contributions.total_employee - pcb_result.pcb
        if available < 0:
            logger.warning(
                "Statutory deductions exceed gross",
                extra={"employee_id": employee.employee_id, "period": f"{year}-{month:02d}"},
            )
            available = ZERO
        unpaid = min(round_to_cents(daily_rate * earnings.unpaid_leave_days), available)
        available -= unpaid
        other = min(round_to_cents(earnings.other_deductions), available)
        available -= other
        advance_deductions = self._apply_advances(advances, available)
        advance_total = sum((a.amount for a in advance_deductions), ZERO)

        total_employee = (
            contributions.total_employee + pcb_result.pcb + unpaid + other + advance_total
        )
        net = round_to_cents(gross - total_employee)

        item = PayrollItemResult(
            employee_id=employee.employee_id,
            year=year,
            month=month,
            age=age,
            basic=basic,
            commission=commission,
            fixed_allowance=allowance,
            overtime_amount=overtime,
            ph_pay=ph_pay,
            bonus=bonus,
            incentive=incentive,
            claims=claims,
            gross=round_to_cents(gross),
            statutory_base=statutory_base,
            contribution_wage=contribution_wage,
            normal_remuneration=normal_remuneration,
            additional_remuneration=additional_remuneration,
            epf_ee=contributions.epf_ee,
            epf_er=contributions.epf_er,
            socso_ee=contributions.socso_ee,
            socso_er=contributions.socso_er,
            eis_ee=contributions.eis_ee,
            eis_er=contributions.eis_er,
            pcb=pcb_result.pcb,
            zakat=round_to_cents(earnings.current_month_zakat),
            unpaid_leave_deduction=unpaid,
            other_deductions=other,
            advance_deducted=advance_total,
            total_employee_deductions=round_to_cents(total_employee),
            total_employer_contributions=contributions.total_employer,
            net=net,
            ytd=ytd,
            pcb_breakdown=pcb_result,
            advance_deductions=tuple(advance_deductions),
        )
        lines = tuple(PayslipLineBuilder.build(item))
        item = replace(item, lines=lines)
        return replace(item, fingerprint=self._generate_fingerprint(item))

    def _working_days(self, earnings: EarningsInput, year: int, month: int) -> int:
        if earnings.working_days:
            return earnings.working_days
        if self.config.standard_work_days:
            return self.config.standard_work_days
        return weekdays_in_month(year, month)

    def _basic(self, employee: EmployeeProfile, earnings: EarningsInput) -> Decimal:
        if earnings.basic is not None:
            return round_to_cents(earnings.basic)
        if employee.is_part_time:
            rate = employee.hourly_rate or self.config.part_time_hourly_rate
            return round_to_cents(earnings.hours_worked * rate)
        return round_to_cents(employee.basic_salary)

    @staticmethod
    def _apply_advances(
        advances: Sequence[AdvanceBalance], available: Decimal
    ) -> list[AdvanceDeduction]:
        """Each advance takes min(installment, balance) while net allows."""
        deductions = []
        for advance in sorted(advances, key=lambda a: a.advance_id):
            if advance.remaining_balance <= 0:
                continue
            amount = min(advance.installment_amount, advance.remaining_balance, available)
            if amount <= 0:
                continue
            available -= amount
            deductions.append(
                AdvanceDeduction(
                    advance_id=advance.advance_id,
                    amount=amount,
                    remaining_after=advance.remaining_balance - amount,
                )
            )
        return deductions

    @staticmethod
    def _generate_fingerprint(item: PayrollItemResult) -> str:
        json_str = json.dumps(item.to_canonical_dict(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()


def reconcile_with_slip(
    item: Any,
    slip: Mapping[str, Decimal],
    tolerance: Decimal = ZERO,
) -> ReconciliationReport:
    """Compare a computed (or persisted) item against a legacy slip.

    Only fields present on the slip are compared. An EPF ee/er pair that
    matches crosswise is reported as a swap instead of two discrepancies.
    """
    report = ReconciliationReport()
    epf_ee = slip.get("epf_ee")
    epf_er = slip.get("epf_er")
    if (
        epf_ee is not None
        and epf_er is not None
        and epf_ee != epf_er
        and Decimal(epf_ee) == item.epf_er
        and Decimal(epf_er) == item.epf_ee
    ):
        report.epf_swapped = True

    for name in SLIP_FIELDS:
        if name not in slip or slip[name] is None:
            continue
        if report.epf_swapped and name in ("epf_ee", "epf_er"):
            continue
        computed = getattr(item, name)
        expected = Decimal(slip[name])
        if abs(expected - computed) > tolerance:
            report.discrepancies.append(SlipDiscrepancy(name, computed, expected))

    if not report.matches:
        logger.info(
            "Slip reconciliation found %d discrepancies",
            len(report.discrepancies),
            extra={"employee_id": item.employee_id, "epf_swapped": report.epf_swapped},
        )
    return report
