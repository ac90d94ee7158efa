"""Typed exception hierarchy for the HRMS kernel.

Every error carries a machine-readable ``code`` and the structured data the
caller needs to act on it, so handlers catch by type and never parse messages.

    KernelError
    +-- InputValidationError
    |   +-- InvalidIdentityError
    |   +-- InvalidClockTransitionError
    |   +-- NonMonotonicTimestampError
    +-- FaceCheckFailedError
    +-- StaleStateError
    +-- DataAnomalyError
    +-- StoreFailureError
    +-- ConfigError
    +-- PayrollRunFinalisedError
"""

from __future__ import annotations

from datetime import date
from typing import Any


class KernelError(Exception):
    """Base class for all kernel errors."""

    code: str = "KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured form for logs and client responses."""
        data = {k: v for k, v in vars(self).items() if not k.startswith("_")}
        data["code"] = self.code
        data["message"] = str(self)
        return data


class InputValidationError(KernelError):
    """Malformed input. Surfaced synchronously and never retried."""

    code = "INPUT_VALIDATION"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidIdentityError(InputValidationError):
    """National ID string looked like an ID but failed validation."""

    code = "INVALID_IDENTITY"

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Invalid national ID '{raw}': {reason}", field="ic_number")


class InvalidClockTransitionError(InputValidationError):
    """Clock event not allowed from the record's current phase."""

    code = "INVALID_CLOCK_TRANSITION"

    def __init__(self, phase: str, event: str, reason: str | None = None):
        self.phase = phase
        self.event = event
        self.reason = reason
        msg = f"Event '{event}' not allowed in phase '{phase}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, field="event")


class NonMonotonicTimestampError(InputValidationError):
    """Event timestamp is not strictly after its predecessor."""

    code = "NON_MONOTONIC_TIMESTAMP"

    def __init__(self, event: str, predecessor: str, timestamp: Any, previous: Any):
        self.event = event
        self.predecessor = predecessor
        self.timestamp = timestamp
        self.previous = previous
        super().__init__(
            f"{event} at {timestamp} is not after {predecessor} at {previous}",
            field="timestamp",
        )


class FaceCheckFailedError(KernelError):
    """Captured selfie failed one of the face-presence rules."""

    code = "FACE_CHECK_FAILED"

    def __init__(self, reason: Any, detail: str | None = None):
        self.reason = reason
        self.detail = detail
        msg = f"Face check failed: {getattr(reason, 'value', reason)}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class StaleStateError(KernelError):
    """Concurrent clock transition lost the serialisation race."""

    code = "STALE_STATE"

    def __init__(self, employee_id: int, work_date: date, reason: str | None = None):
        self.employee_id = employee_id
        self.work_date = work_date
        self.reason = reason
        msg = f"Clock record for employee {employee_id} on {work_date} changed concurrently"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DataAnomalyError(KernelError):
    """Duration sanity check failed; the record is kept and flagged."""

    code = "DATA_ANOMALY"

    def __init__(self, record_id: int | None, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Clock record {record_id} flagged invalid: {reason}")


class StoreFailureError(KernelError):
    """Persistence failed; the per-record transaction was rolled back."""

    code = "STORE_FAILURE"

    def __init__(self, operation: str, record_id: Any = None, cause: str | None = None):
        self.operation = operation
        self.record_id = record_id
        self.cause = cause
        msg = f"Store failure during {operation}"
        if record_id is not None:
            msg += f" (record {record_id})"
        if cause:
            msg += f": {cause}"
        super().__init__(msg)


class ConfigError(KernelError):
    """Missing or malformed configuration constant. Fatal at startup."""

    code = "CONFIG_ERROR"

    def __init__(self, name: str, value: Any = None, reason: str | None = None):
        self.name = name
        self.value = value
        self.reason = reason
        msg = f"Invalid configuration {name}={value!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollRunFinalisedError(KernelError):
    """Write attempted against a finalised payroll run."""

    code = "PAYROLL_RUN_FINALISED"

    def __init__(self, run_id: int, year: int, month: int):
        self.run_id = run_id
        self.year = year
        self.month = month
        super().__init__(f"Payroll run {run_id} for {year}-{month:02d} is finalised")
