"""Payroll run and payroll item models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_kernel.models.base import Base, PortableJSON, TimestampMixin


class PayrollRun(Base, TimestampMixin):
    """One payroll run per organisation and month."""

    __tablename__ = "payroll_run"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    finalised_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "year", "month", name="payroll_run_period_unique"),
        CheckConstraint("status IN ('draft', 'finalised')", name="payroll_run_status_check"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_run_month_check"),
    )

    items: Mapped[list[PayrollItem]] = relationship(back_populates="payroll_run")

    @property
    def is_finalised(self) -> bool:
        return self.status == "finalised"


def _money() -> Any:
    return mapped_column(Numeric(12, 2), nullable=False, default=0)


class PayrollItem(Base, TimestampMixin):
    """Computed pay for one employee in one run."""

    __tablename__ = "payroll_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("payroll_run.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employee.id"), nullable=False, index=True
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    # Earnings
    basic: Mapped[Decimal] = _money()
    commission: Mapped[Decimal] = _money()
    fixed_allowance: Mapped[Decimal] = _money()
    overtime_amount: Mapped[Decimal] = _money()
    ph_pay: Mapped[Decimal] = _money()
    bonus: Mapped[Decimal] = _money()
    incentive: Mapped[Decimal] = _money()
    claims: Mapped[Decimal] = _money()

    # Computed
    gross: Mapped[Decimal] = _money()
    statutory_base: Mapped[Decimal] = _money()
    normal_remuneration: Mapped[Decimal] = _money()
    additional_remuneration: Mapped[Decimal] = _money()
    epf_ee: Mapped[Decimal] = _money()
    epf_er: Mapped[Decimal] = _money()
    socso_ee: Mapped[Decimal] = _money()
    socso_er: Mapped[Decimal] = _money()
    eis_ee: Mapped[Decimal] = _money()
    eis_er: Mapped[Decimal] = _money()
    pcb: Mapped[Decimal] = _money()
    zakat: Mapped[Decimal] = _money()
    unpaid_leave_deduction: Mapped[Decimal] = _money()
    other_deductions: Mapped[Decimal] = _money()
    advance_deducted: Mapped[Decimal] = _money()
    total_employee_deductions: Mapped[Decimal] = _money()
    total_employer_contributions: Mapped[Decimal] = _money()
    net: Mapped[Decimal] = _money()

    ytd_snapshot: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
    pcb_breakdown: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
    earnings_input: Mapped[dict[str, Any]] = mapped_column(PortableJSON, nullable=False, default=dict)
    # Installments taken this month; balances move only at finalisation.
    advance_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        PortableJSON, nullable=False, default=list
    )
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="payroll_item_run_employee_unique"),
    )

    payroll_run: Mapped[PayrollRun] = relationship(back_populates="items")

    @property
    def taxable_gross(self) -> Decimal:
        """Remuneration counted as Y for later months' PCB."""
        return Decimal(self.normal_remuneration) + Decimal(self.additional_remuneration)
