"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from hrms_kernel.exceptions import InputValidationError

ZERO = Decimal("0")


class EmploymentClass(str, Enum):
    """Employment classes."""

    PROBATION = "probation"
    CONFIRMED = "confirmed"
    CONTRACT = "contract"
    PART_TIME = "part_time"


class Role(str, Enum):
    STAFF = "staff"
    SUPERVISOR = "supervisor"
    MANAGER = "manager"
    DIRECTOR = "director"


class MaritalStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"
    DIVORCED = "divorced"
    WIDOWED = "widowed"


class ResidentStatus(str, Enum):
    """Residency for contribution variants."""

    MALAYSIAN = "malaysian"
    PERMANENT_RESIDENT = "permanent_resident"
    FOREIGN = "foreign"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class LineType(str, Enum):
    """Payslip line types."""

    EARNING = "EARNING"
    REIMBURSEMENT = "REIMBURSEMENT"
    STATUTORY = "STATUTORY"
    TAX = "TAX"
    DEDUCTION = "DEDUCTION"
    EMPLOYER_CONTRIBUTION = "EMPLOYER_CONTRIBUTION"


@dataclass(frozen=True)
class EmployeeProfile:
    """Employee attributes the calculators need."""

    employee_id: int
    ic_number: str | None
    employment_class: EmploymentClass = EmploymentClass.CONFIRMED
    basic_salary: Decimal = ZERO
    hourly_rate: Decimal | None = None
    date_of_birth: date | None = None
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    spouse_working: bool = False
    spouse_disabled: bool = False
    children_count: int = 0
    disabled: bool = False
    resident_status: ResidentStatus = ResidentStatus.MALAYSIAN
    role: Role = Role.STAFF

    @property
    def is_part_time(self) -> bool:
        return self.employment_class == EmploymentClass.PART_TIME

    @property
    def claims_spouse_relief(self) -> bool:
        """Married with a non-working spouse."""
        return self.marital_status == MaritalStatus.MARRIED and not self.spouse_working

    def validate(self) -> None:
        """Check the part-time / full-time pay invariant."""
        if self.children_count < 0:
            raise InputValidationError("children_count must be non-negative", "children_count")
        if self.is_part_time:
            if self.basic_salary != 0:
                raise InputValidationError(
                    "part-time employees carry no basic salary", "basic_salary"
                )
            if self.hourly_rate is None or self.hourly_rate <= 0:
                raise InputValidationError(
                    "part-time employees need a positive hourly rate", "hourly_rate"
                )
        elif self.basic_salary <= 0:
            raise InputValidationError(
                "full-time employees need a positive basic salary", "basic_salary"
            )


@dataclass(frozen=True)
class EarningsInput:
    """One employee-month of earnings and deduction inputs.

    ``basic`` defaults to the profile salary (or hours x hourly rate for
    part-timers). ``overtime_amount`` overrides the hours-based overtime.
    """

    basic: Decimal | None = None
    commission: Decimal = ZERO
    fixed_allowance: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    overtime_amount: Decimal | None = None
    bonus: Decimal = ZERO
    incentive: Decimal = ZERO
    claims: Decimal = ZERO
    ph_days_worked: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    other_deductions: Decimal = ZERO
    hours_worked: Decimal = ZERO
    working_days: int | None = None
    current_month_zakat: Decimal = ZERO

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and value < 0:
                raise InputValidationError(f"{f.name} must be non-negative", f.name)
        if self.working_days is not None and self.working_days == 0:
            raise InputValidationError("working_days must be positive", "working_days")


@dataclass(frozen=True)
class YTDAccumulators:
    """Year-to-date figures from months before the one being computed."""

    gross: Decimal = ZERO
    epf: Decimal = ZERO
    pcb: Decimal = ZERO
    zakat: Decimal = ZERO
    socso_eis: Decimal = ZERO

    def plus(
        self,
        *,
        gross: Decimal = ZERO,
        epf: Decimal = ZERO,
        pcb: Decimal = ZERO,
        zakat: Decimal = ZERO,
        socso_eis: Decimal = ZERO,
    ) -> YTDAccumulators:
        return YTDAccumulators(
            gross=self.gross + gross,
            epf=self.epf + epf,
            pcb=self.pcb + pcb,
            zakat=self.zakat + zakat,
            socso_eis=self.socso_eis + socso_eis,
        )

    @classmethod
    def from_items(cls, items: Iterable[Any]) -> YTDAccumulators:
        """Sum persisted payroll items (anything with the item money fields)."""
        ytd = cls()
        for item in items:
            ytd = ytd.plus(
                gross=item.taxable_gross,
                epf=item.epf_ee,
                pcb=item.pcb,
                zakat=item.zakat,
                socso_eis=item.socso_ee + item.eis_ee,
            )
        return ytd

    def to_dict(self) -> dict[str, str]:
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class EPFRates:
    ee_rate: Decimal
    er_rate: Decimal
    ceiling: Decimal


@dataclass(frozen=True)
class StepContribution:
    """Employee and employer portions from a step table."""

    ee: Decimal
    er: Decimal


@dataclass(frozen=True)
class ContributionResult:
    """EPF, SOCSO and EIS for one employee-month."""

    epf_wage: Decimal
    socso_eis_wage: Decimal
    epf_ee: Decimal
    epf_er: Decimal
    socso_ee: Decimal
    socso_er: Decimal
    eis_ee: Decimal
    eis_er: Decimal

    @property
    def total_employee(self) -> Decimal:
        return self.epf_ee + self.socso_ee + self.eis_ee

    @property
    def total_employer(self) -> Decimal:
        return self.epf_er + self.socso_er + self.eis_er


@dataclass(frozen=True)
class PCBInput:
    """Inputs to the computerised monthly tax deduction."""

    month: int
    normal_remuneration: Decimal
    additional_remuneration: Decimal = ZERO
    epf_on_normal: Decimal = ZERO
    epf_on_additional: Decimal = ZERO
    socso_eis_current: Decimal = ZERO
    ytd: YTDAccumulators = field(default_factory=YTDAccumulators)
    current_month_zakat: Decimal = ZERO
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    spouse_working: bool = False
    spouse_disabled: bool = False
    children_count: int = 0
    disabled: bool = False
    life_insurance_relief: Decimal = ZERO

    @property
    def claims_spouse_relief(self) -> bool:
        return self.marital_status == MaritalStatus.MARRIED and not self.spouse_working


@dataclass(frozen=True)
class PCBResult:
    """Monthly tax deduction with its intermediate figures."""

    pcb: Decimal
    normal_std: Decimal
    additional_std: Decimal
    chargeable_income: Decimal
    chargeable_income_additional: Decimal | None
    annual_tax: Decimal
    k1: Decimal
    k2: Decimal
    kt: Decimal
    reliefs: Decimal
    remaining_months: int

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Decimal) else value
        return data


@dataclass(frozen=True)
class AdvanceBalance:
    """An active salary advance as seen by the assembler."""

    advance_id: int
    installment_amount: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class AdvanceDeduction:
    advance_id: int
    amount: Decimal
    remaining_after: Decimal

    @property
    def completed(self) -> bool:
        return self.remaining_after <= 0
