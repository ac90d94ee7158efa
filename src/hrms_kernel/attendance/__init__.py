"""Daily attendance: clock state machine, durations and selfie checks."""

from hrms_kernel.attendance.durations import DailyTotals, compute_daily_totals
from hrms_kernel.attendance.face_check import (
    CaptureSource,
    FaceAnalyzer,
    FaceCheckReason,
    check_face_presence,
)
from hrms_kernel.attendance.geocoding import GpsFix, NominatimGeocoder, resolve_address
from hrms_kernel.attendance.state_machine import ClockEvent, ClockPhase, ClockStateMachine

__all__ = [
    "CaptureSource",
    "ClockEvent",
    "ClockPhase",
    "ClockStateMachine",
    "DailyTotals",
    "FaceAnalyzer",
    "FaceCheckReason",
    "GpsFix",
    "NominatimGeocoder",
    "check_face_presence",
    "compute_daily_totals",
    "resolve_address",
]
