"""HRMS kernel services."""

from hrms_kernel.services.clock_service import AutoCloseReport, ClockEventResult, ClockService
from hrms_kernel.services.locking_service import ClockLockRegistry
from hrms_kernel.services.payroll_service import PayrollService, RecomputeReport
from hrms_kernel.services.retention import RetentionReport, RetentionSweeper, run_retention_sweep

__all__ = [
    "AutoCloseReport",
    "ClockEventResult",
    "ClockLockRegistry",
    "ClockService",
    "PayrollService",
    "RecomputeReport",
    "RetentionReport",
    "RetentionSweeper",
    "run_retention_sweep",
]
