"""ORM models for the externally owned record store."""

from hrms_kernel.models.attendance import (
    ADDRESS_FIELDS,
    EVENT_SLOTS,
    MEDIA_FIELDS,
    PHOTO_FIELDS,
    ClockRecord,
    RetentionLog,
)
from hrms_kernel.models.base import Base, TimestampMixin
from hrms_kernel.models.employee import Employee, SalaryAdvance
from hrms_kernel.models.payroll import PayrollItem, PayrollRun

__all__ = [
    "ADDRESS_FIELDS",
    "EVENT_SLOTS",
    "MEDIA_FIELDS",
    "PHOTO_FIELDS",
    "Base",
    "ClockRecord",
    "Employee",
    "PayrollItem",
    "PayrollRun",
    "RetentionLog",
    "SalaryAdvance",
    "TimestampMixin",
]
