"""Employee and salary advance models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_kernel.calculators.types import (
    AdvanceBalance,
    EmployeeProfile,
    EmploymentClass,
    MaritalStatus,
    ResidentStatus,
    Role,
)
from hrms_kernel.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee record. Deactivated on termination, never deleted."""

    __tablename__ = "employee"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    outlet_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    employment_class: Mapped[str] = mapped_column(String, nullable=False, default="confirmed")
    role: Mapped[str] = mapped_column(String, nullable=False, default="staff")
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_holder: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_number: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String, nullable=True)

    marital_status: Mapped[str] = mapped_column(String, nullable=False, default="single")
    spouse_working: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    spouse_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    children_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resident_status: Mapped[str] = mapped_column(String, nullable=False, default="malaysian")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "employment_class IN ('probation', 'confirmed', 'contract', 'part_time')",
            name="employee_class_check",
        ),
        CheckConstraint(
            "role IN ('staff', 'supervisor', 'manager', 'director')",
            name="employee_role_check",
        ),
        CheckConstraint(
            "resident_status IN ('malaysian', 'permanent_resident', 'foreign')",
            name="employee_resident_status_check",
        ),
        CheckConstraint("status IN ('active', 'inactive')", name="employee_status_check"),
    )

    advances: Mapped[list[SalaryAdvance]] = relationship(back_populates="employee")

    def to_profile(self) -> EmployeeProfile:
        """Calculator view of this employee."""
        return EmployeeProfile(
            employee_id=self.id,
            ic_number=self.ic_number,
            employment_class=EmploymentClass(self.employment_class),
            basic_salary=Decimal(self.basic_salary or 0),
            hourly_rate=Decimal(self.hourly_rate) if self.hourly_rate is not None else None,
            date_of_birth=self.date_of_birth,
            marital_status=MaritalStatus(self.marital_status),
            spouse_working=self.spouse_working,
            spouse_disabled=self.spouse_disabled,
            children_count=self.children_count,
            disabled=self.disabled,
            resident_status=ResidentStatus(self.resident_status),
            role=Role(self.role),
        )


class SalaryAdvance(Base, TimestampMixin):
    """Salary advance repaid by monthly installments."""

    __tablename__ = "salary_advance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employee.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    installment_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_deducted: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    completed_at: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')",
            name="salary_advance_status_check",
        ),
    )

    employee: Mapped[Employee] = relationship(back_populates="advances")

    def to_balance(self) -> AdvanceBalance:
        return AdvanceBalance(
            advance_id=self.id,
            installment_amount=Decimal(self.installment_amount),
            remaining_balance=Decimal(self.remaining_balance),
        )
