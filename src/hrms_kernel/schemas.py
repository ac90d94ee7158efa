"""Pydantic schemas for inbound requests and outbound views."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from hrms_kernel.attendance.face_check import CaptureSource
from hrms_kernel.attendance.geocoding import GpsFix
from hrms_kernel.attendance.state_machine import ClockEvent
from hrms_kernel.calculators.types import EarningsInput


# ============================================================================
# Attendance
# ============================================================================


class ClockEventRequest(BaseModel):
    """A clock event as submitted by the self-service client."""

    employee_id: int
    work_date: date
    event: ClockEvent
    selfie: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    capture_source: CaptureSource = CaptureSource.CAMERA

    def gps(self) -> GpsFix:
        return GpsFix(self.latitude, self.longitude, self.accuracy)


class ClockRecordView(BaseModel):
    """Clock record as returned to clients (media omitted)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    work_date: date
    clock_in_1: datetime | None = None
    clock_out_1: datetime | None = None
    clock_in_2: datetime | None = None
    clock_out_2: datetime | None = None
    address_in_1: str | None = None
    address_out_1: str | None = None
    address_in_2: str | None = None
    address_out_2: str | None = None
    total_work_minutes: int | None = None
    overtime_minutes: int | None = None
    status: str
    is_invalid: bool
    anomaly_reason: str | None = None
    needs_review: bool
    version: int


# ============================================================================
# Payroll
# ============================================================================


class EarningsRequest(BaseModel):
    """Earnings decomposition for one employee-month."""

    basic: Decimal | None = Field(default=None, ge=0)
    commission: Decimal = Field(default=Decimal("0"), ge=0)
    fixed_allowance: Decimal = Field(default=Decimal("0"), ge=0)
    overtime_hours: Decimal = Field(default=Decimal("0"), ge=0)
    overtime_amount: Decimal | None = Field(default=None, ge=0)
    bonus: Decimal = Field(default=Decimal("0"), ge=0)
    incentive: Decimal = Field(default=Decimal("0"), ge=0)
    claims: Decimal = Field(default=Decimal("0"), ge=0)
    ph_days_worked: Decimal = Field(default=Decimal("0"), ge=0)
    unpaid_leave_days: Decimal = Field(default=Decimal("0"), ge=0)
    other_deductions: Decimal = Field(default=Decimal("0"), ge=0)
    hours_worked: Decimal = Field(default=Decimal("0"), ge=0)
    working_days: int | None = Field(default=None, gt=0)
    current_month_zakat: Decimal = Field(default=Decimal("0"), ge=0)

    def to_input(self) -> EarningsInput:
        return EarningsInput(**self.model_dump())


class SlipFigures(BaseModel):
    """Figures printed on a legacy payslip, for reconciliation."""

    model_config = ConfigDict(from_attributes=True)

    gross: Decimal | None = None
    epf_ee: Decimal | None = None
    epf_er: Decimal | None = None
    socso_ee: Decimal | None = None
    socso_er: Decimal | None = None
    eis_ee: Decimal | None = None
    eis_er: Decimal | None = None
    pcb: Decimal | None = None
    net: Decimal | None = None

    def as_mapping(self) -> dict[str, Decimal]:
        return self.model_dump(exclude_none=True)
