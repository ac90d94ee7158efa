"""Payroll run service: computes, persists and finalises monthly items."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from hrms_kernel.calculators.engine import (
    PayrollAssembler,
    PayrollItemResult,
    ReconciliationReport,
    reconcile_with_slip,
)
from hrms_kernel.calculators.money import ZERO
from hrms_kernel.calculators.types import AdvanceBalance, EarningsInput, YTDAccumulators
from hrms_kernel.config import RuleConfig, get_rule_config
from hrms_kernel.exceptions import InputValidationError, PayrollRunFinalisedError
from hrms_kernel.models import Employee, PayrollItem, PayrollRun
from hrms_kernel.repository import KernelRepository, SqlAlchemyRepository
from hrms_kernel.schemas import EarningsRequest, SlipFigures

logger = logging.getLogger(__name__)

# PayrollItemResult fields stored as columns on PayrollItem.
ITEM_COLUMNS = (
    "basic",
    "commission",
    "fixed_allowance",
    "overtime_amount",
    "ph_pay",
    "bonus",
    "incentive",
    "claims",
    "gross",
    "statutory_base",
    "normal_remuneration",
    "additional_remuneration",
    "epf_ee",
    "epf_er",
    "socso_ee",
    "socso_er",
    "eis_ee",
    "eis_er",
    "pcb",
    "zakat",
    "unpaid_leave_deduction",
    "other_deductions",
    "advance_deducted",
    "total_employee_deductions",
    "total_employer_contributions",
    "net",
)


def earnings_to_json(earnings: EarningsInput) -> dict[str, Any]:
    """JSON form of an EarningsInput, kept on the item for recomputation."""
    data: dict[str, Any] = {}
    for f in fields(earnings):
        value = getattr(earnings, f.name)
        data[f.name] = str(value) if isinstance(value, Decimal) else value
    return data


def earnings_from_json(data: Mapping[str, Any]) -> EarningsInput:
    """Rebuild stored earnings; unset keys fall back to the request defaults."""
    present = {name: value for name, value in data.items() if value is not None}
    return EarningsRequest.model_validate(present).to_input()


@dataclass
class PayrollRunReport:
    run_id: int
    year: int
    month: int
    computed: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)


@dataclass
class RecomputeReport:
    employee_id: int
    year: int
    recomputed: list[int] = field(default_factory=list)
    skipped_finalised: list[int] = field(default_factory=list)


class PayrollService:
    """Service for the monthly payroll lifecycle.

    Operations:
    - run_payroll: compute (or recompute) every active employee's draft item
    - compute_for_employee: compute one employee's item in a draft run
    - finalise_run: freeze a run and apply salary advance installments
    - recompute_from: recompute an employee's later draft months after an edit
    - verify_run: recompute stored items and report mismatches such as EPF swaps
    - reconcile_slip: compare a stored item with a legacy payslip

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: RuleConfig | None = None,
        repository: KernelRepository | None = None,
    ):
        self.session = session
        self.repo = repository or SqlAlchemyRepository(session)
        self.assembler = PayrollAssembler(config or get_rule_config())

    async def get_ytd(self, employee_id: int, year: int, month: int) -> YTDAccumulators:
        """Accumulators from the employee's items in months before ``month``."""
        items = await self.repo.find_payroll_items(employee_id, year, month)
        return YTDAccumulators.from_items(items)

    async def run_payroll(
        self,
        company_id: int,
        year: int,
        month: int,
        earnings_by_employee: Mapping[int, EarningsInput] | None = None,
    ) -> PayrollRunReport:
        """Compute draft items for all active employees of a company.

        YTD accumulators are read for every employee before any item is
        written. Employees whose input fails validation are reported and
        skipped; the rest of the run continues.
        """
        earnings_by_employee = earnings_by_employee or {}
        run = await self.repo.get_or_create_run(company_id, year, month)
        if run.is_finalised:
            raise PayrollRunFinalisedError(run.id, year, month)

        employees = await self.repo.list_active_employees(company_id)
        snapshot = {emp.id: await self.get_ytd(emp.id, year, month) for emp in employees}

        report = PayrollRunReport(run_id=run.id, year=year, month=month)
        for employee in employees:
            earnings = earnings_by_employee.get(employee.id, EarningsInput())
            try:
                await self._compute_and_store(run, employee, earnings, snapshot[employee.id])
            except InputValidationError as exc:
                report.errors[employee.id] = str(exc)
                logger.warning(
                    "Payroll item skipped: %s",
                    exc,
                    extra={"employee_id": employee.id, "period": f"{year}-{month:02d}"},
                )
                continue
            report.computed.append(employee.id)

        logger.info(
            "Payroll run computed",
            extra={
                "run_id": run.id,
                "period": f"{year}-{month:02d}",
                "computed": len(report.computed),
                "errors": len(report.errors),
            },
        )
        return report

    async def compute_for_employee(
        self,
        employee_id: int,
        year: int,
        month: int,
        earnings: EarningsInput,
    ) -> PayrollItem:
        employee = await self._require_employee(employee_id)
        run = await self.repo.get_or_create_run(employee.company_id, year, month)
        if run.is_finalised:
            raise PayrollRunFinalisedError(run.id, year, month)
        ytd = await self.get_ytd(employee.id, year, month)
        return await self._compute_and_store(run, employee, earnings, ytd)

    async def finalise_run(self, company_id: int, year: int, month: int) -> PayrollRun:
        """Freeze a run. Salary advance balances move here, once."""
        run = await self.repo.get_run(company_id, year, month, for_update=True)
        if run is None:
            raise InputValidationError(f"no payroll run for {year}-{month:02d}", "month")
        if run.is_finalised:
            raise PayrollRunFinalisedError(run.id, year, month)

        employees = await self.repo.list_active_employees(company_id)
        for employee in employees:
            item = await self.repo.find_payroll_item(run.id, employee.id)
            if item is not None and item.advance_breakdown:
                await self._apply_advance_installments(
                    employee.id, item.advance_breakdown, date(year, month, 1)
                )

        run.status = "finalised"
        run.finalised_at = datetime.now(timezone.utc)
        await self.session.flush()
        logger.info("Payroll run finalised", extra={"run_id": run.id, "period": f"{year}-{month:02d}"})
        return run

    async def recompute_from(
        self,
        employee_id: int,
        year: int,
        month: int,
        earnings_by_month: Mapping[int, EarningsInput] | None = None,
    ) -> RecomputeReport:
        """Recompute an employee's items from ``month`` to December.

        Later months depend on earlier ones through the YTD accumulators, so
        an edited month invalidates everything after it. Months without an
        item are left alone; finalised months are reported, never touched.
        """
        earnings_by_month = earnings_by_month or {}
        employee = await self._require_employee(employee_id)
        report = RecomputeReport(employee_id=employee_id, year=year)

        for current in range(month, 13):
            run = await self.repo.get_run(employee.company_id, year, current, for_update=True)
            if run is None:
                continue
            item = await self.repo.find_payroll_item(run.id, employee.id)
            if item is None and current not in earnings_by_month:
                continue
            if run.is_finalised:
                report.skipped_finalised.append(current)
                continue
            earnings = earnings_by_month.get(current)
            if earnings is None:
                earnings = earnings_from_json(item.earnings_input)
            ytd = await self.get_ytd(employee.id, year, current)
            await self._compute_and_store(run, employee, earnings, ytd)
            report.recomputed.append(current)

        if report.skipped_finalised:
            logger.warning(
                "Recompute skipped finalised months %s",
                report.skipped_finalised,
                extra={"employee_id": employee_id, "year": year},
            )
        return report

    async def verify_run(
        self, company_id: int, year: int, month: int
    ) -> dict[int, ReconciliationReport]:
        """Recompute each stored item and compare it with what was persisted."""
        run = await self.repo.get_run(company_id, year, month)
        if run is None:
            return {}
        mismatches: dict[int, ReconciliationReport] = {}
        for employee in await self.repo.list_active_employees(company_id):
            item = await self.repo.find_payroll_item(run.id, employee.id)
            if item is None:
                continue
            expected = self.assembler.compute_payroll_item(
                employee.to_profile(),
                year,
                month,
                earnings_from_json(item.earnings_input),
                await self.get_ytd(employee.id, year, month),
                self._balances_from_breakdown(item.advance_breakdown),
            )
            stored = SlipFigures.model_validate(item).as_mapping()
            report = reconcile_with_slip(expected, stored)
            if not report.matches:
                mismatches[employee.id] = report
        return mismatches

    async def reconcile_slip(
        self,
        employee_id: int,
        year: int,
        month: int,
        slip: SlipFigures,
        tolerance: Decimal = ZERO,
    ) -> ReconciliationReport:
        """Compare an employee's stored item with the figures on a legacy slip."""
        employee = await self._require_employee(employee_id)
        run = await self.repo.get_run(employee.company_id, year, month)
        item = await self.repo.find_payroll_item(run.id, employee.id) if run else None
        if item is None:
            raise InputValidationError(
                f"no payroll item for employee {employee_id} in {year}-{month:02d}", "month"
            )
        return reconcile_with_slip(item, slip.as_mapping(), tolerance)

    # Internals

    async def _require_employee(self, employee_id: int) -> Employee:
        employee = await self.repo.get_employee(employee_id)
        if employee is None:
            raise InputValidationError(f"unknown employee {employee_id}", "employee_id")
        return employee

    async def _compute_and_store(
        self,
        run: PayrollRun,
        employee: Employee,
        earnings: EarningsInput,
        ytd: YTDAccumulators,
    ) -> PayrollItem:
        advances = await self.repo.list_active_advances(employee.id)
        result = self.assembler.compute_payroll_item(
            employee.to_profile(),
            run.year,
            run.month,
            earnings,
            ytd,
            [a.to_balance() for a in advances],
        )
        item = await self.repo.find_payroll_item(run.id, employee.id)
        if item is None:
            item = PayrollItem(
                payroll_run_id=run.id,
                employee_id=employee.id,
                year=run.year,
                month=run.month,
            )
        self._populate(item, result, earnings)
        return await self.repo.insert_payroll_item(item)

    @staticmethod
    def _populate(item: PayrollItem, result: PayrollItemResult, earnings: EarningsInput) -> None:
        for name in ITEM_COLUMNS:
            setattr(item, name, getattr(result, name))
        item.ytd_snapshot = result.ytd.to_dict()
        item.pcb_breakdown = result.pcb_breakdown.to_dict()
        item.earnings_input = earnings_to_json(earnings)
        item.advance_breakdown = [
            {
                "advance_id": a.advance_id,
                "amount": str(a.amount),
                "remaining_before": str(a.amount + a.remaining_after),
            }
            for a in result.advance_deductions
        ]
        item.fingerprint = result.fingerprint

    @staticmethod
    def _balances_from_breakdown(breakdown: list[dict[str, Any]]) -> list[AdvanceBalance]:
        return [
            AdvanceBalance(
                advance_id=int(entry["advance_id"]),
                installment_amount=Decimal(entry["amount"]),
                remaining_balance=Decimal(entry["remaining_before"]),
            )
            for entry in breakdown
        ]

    async def _apply_advance_installments(
        self, employee_id: int, breakdown: list[dict[str, Any]], period_start: date
    ) -> None:
        advances = {a.id: a for a in await self.repo.list_active_advances(employee_id)}
        for entry in breakdown:
            advance = advances.get(int(entry["advance_id"]))
            if advance is None:
                continue
            amount = min(Decimal(entry["amount"]), Decimal(advance.remaining_balance))
            advance.total_deducted = Decimal(advance.total_deducted or 0) + amount
            advance.remaining_balance = Decimal(advance.remaining_balance) - amount
            if advance.remaining_balance <= ZERO:
                advance.remaining_balance = ZERO
                advance.status = "completed"
                advance.completed_at = period_start
            else:
                advance.status = "active"
        await self.session.flush()
