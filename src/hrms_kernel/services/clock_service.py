"""Clock event recording and auto clock-out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Callable, Mapping
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_kernel.attendance.durations import MINUTES_PER_DAY, compute_daily_totals
from hrms_kernel.attendance.face_check import (
    CaptureSource,
    FaceAnalyzer,
    FaceCheckConfig,
    check_face_presence,
)
from hrms_kernel.attendance.geocoding import GpsFix, ReverseGeocoder, resolve_address
from hrms_kernel.attendance.state_machine import ClockEvent, ClockPhase, ClockStateMachine
from hrms_kernel.config import AttendanceConfig
from hrms_kernel.exceptions import (
    ConfigError,
    DataAnomalyError,
    FaceCheckFailedError,
    InputValidationError,
    KernelError,
    StaleStateError,
    StoreFailureError,
)
from hrms_kernel.models import ClockRecord
from hrms_kernel.repository import RepositoryFactory, SqlAlchemyRepository
from hrms_kernel.schemas import ClockEventRequest, ClockRecordView
from hrms_kernel.services.locking_service import ClockLockRegistry

logger = logging.getLogger(__name__)

# Shifts ending in this window are night shifts for auto clock-out.
NIGHT_SHIFT_END_LATEST = time(6, 0)
AUTO_CLOSE_REASON = "forgot"


@dataclass(frozen=True)
class ClockEventResult:
    """Outcome of a clock event: the updated record, or why it was rejected."""

    accepted: bool
    record: ClockRecord | None = None
    code: str | None = None
    reason: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, record: ClockRecord) -> ClockEventResult:
        return cls(accepted=True, record=record)

    @classmethod
    def rejected(cls, error: KernelError) -> ClockEventResult:
        reason = getattr(error, "reason", None)
        return cls(
            accepted=False,
            code=error.code,
            reason=getattr(reason, "value", reason),
            message=str(error),
        )

    def view(self) -> ClockRecordView | None:
        """Client view of the stored record, without photos."""
        if self.record is None:
            return None
        return ClockRecordView.model_validate(self.record)


@dataclass
class AutoCloseReport:
    closed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    errors: list[dict[str, object]] = field(default_factory=list)


def _local_now(tz_name: str) -> Callable[[], datetime]:
    zone = ZoneInfo(tz_name)

    def now() -> datetime:
        return datetime.now(zone).replace(tzinfo=None, microsecond=0)

    return now


class ClockService:
    """Records the four daily clock events for employees.

    Each event runs the face-presence check, resolves the GPS address
    (best-effort), then applies the transition inside one transaction while
    holding the (employee, work_date) lock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        analyzer: FaceAnalyzer | None = None,
        geocoder: ReverseGeocoder | None = None,
        locks: ClockLockRegistry | None = None,
        config: AttendanceConfig | None = None,
        face_config: FaceCheckConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        timezone: str = "Asia/Kuala_Lumpur",
        repository: RepositoryFactory = SqlAlchemyRepository,
    ):
        self.session_factory = session_factory
        self.analyzer = analyzer
        self.geocoder = geocoder
        self.locks = locks or ClockLockRegistry()
        self.config = config or AttendanceConfig()
        self.face_config = face_config
        self.clock = clock or _local_now(timezone)
        self.repository = repository

    async def record_clock_event(
        self,
        employee_id: int,
        work_date: date,
        event: ClockEvent | str,
        selfie_b64: str,
        gps: GpsFix,
        capture_source: CaptureSource | str = CaptureSource.CAMERA,
        expected_version: int | None = None,
    ) -> ClockEventResult:
        """Validate and record one clock event.

        Domain rejections come back as a rejected result; nothing is written
        for them.
        """
        try:
            event = ClockEvent(event)
            capture_source = CaptureSource(capture_source)
        except ValueError as exc:
            return self._reject(InputValidationError(str(exc), "event"), employee_id, work_date)
        if self.analyzer is None:
            raise ConfigError("FACE_ANALYZER", None, "no face analyzer configured")

        try:
            check_face_presence(selfie_b64, capture_source, self.analyzer, self.face_config)
            address = await resolve_address(self.geocoder, gps)
            record = await self._apply_event(
                employee_id, work_date, event, selfie_b64, gps, address, expected_version
            )
        except (InputValidationError, FaceCheckFailedError, StaleStateError) as exc:
            return self._reject(exc, employee_id, work_date)
        except IntegrityError:
            # Another request created the record first.
            return self._reject(
                StaleStateError(employee_id, work_date, "record created concurrently"),
                employee_id,
                work_date,
            )
        except SQLAlchemyError as exc:
            error = StoreFailureError("record_clock_event", cause=type(exc).__name__)
            logger.error(
                "Clock event not stored",
                extra={"employee_id": employee_id, "work_date": work_date.isoformat()},
                exc_info=True,
            )
            return ClockEventResult.rejected(error)
        return ClockEventResult.ok(record)

    async def submit(
        self, request: ClockEventRequest, expected_version: int | None = None
    ) -> ClockEventResult:
        """Record a clock event submitted by the self-service client."""
        return await self.record_clock_event(
            request.employee_id,
            request.work_date,
            request.event,
            request.selfie,
            request.gps(),
            request.capture_source,
            expected_version,
        )

    def _reject(self, error: KernelError, employee_id: int, work_date: date) -> ClockEventResult:
        logger.info(
            "Clock event rejected: %s",
            error,
            extra={"employee_id": employee_id, "work_date": work_date.isoformat(), "code": error.code},
        )
        return ClockEventResult.rejected(error)

    async def _apply_event(
        self,
        employee_id: int,
        work_date: date,
        event: ClockEvent,
        selfie_b64: str,
        gps: GpsFix,
        address: str,
        expected_version: int | None,
    ) -> ClockRecord:
        now = self.clock()
        async with self.session_factory() as session:
            async with session.begin():
                async with self.locks.hold(session, employee_id, work_date):
                    repo = self.repository(session)
                    employee = await repo.get_employee(employee_id)
                    if employee is None:
                        raise InputValidationError(f"unknown employee {employee_id}", "employee_id")

                    record = await repo.find_clock_record(employee_id, work_date, for_update=True)
                    current_version = record.version if record is not None else 0
                    if expected_version is not None and expected_version != current_version:
                        raise StaleStateError(
                            employee_id,
                            work_date,
                            f"expected version {expected_version}, found {current_version}",
                        )
                    if event is ClockEvent.CLOCK_IN_1 and now.date() != work_date:
                        raise InputValidationError(
                            f"clock_in_1 at {now.isoformat()} is not on work date {work_date}",
                            "work_date",
                        )

                    target = ClockStateMachine.validate_event(record, event, now)
                    if record is None:
                        record = ClockRecord(
                            employee_id=employee_id,
                            company_id=employee.company_id,
                            work_date=work_date,
                            status=ClockPhase.NOT_STARTED.value,
                            media_retention_eligible_at=work_date,
                            version=0,
                            is_invalid=False,
                            needs_review=False,
                        )

                    slot = event.slot
                    setattr(record, event.value, now)
                    setattr(record, f"photo_{slot}", selfie_b64)
                    setattr(record, f"location_{slot}", gps.as_location())
                    setattr(record, f"address_{slot}", address)
                    setattr(record, f"face_detected_{slot}", True)
                    if record.media_deleted_at is not None:
                        # Fresh media on a swept record is subject to retention again.
                        record.media_deleted_at = None
                    record.status = target.status
                    record.version = current_version + 1

                    if target is ClockPhase.COMPLETED:
                        self._store_totals(record)

                    await repo.upsert_clock_record(record)
        logger.info(
            "Recorded %s",
            event.value,
            extra={"employee_id": employee_id, "work_date": work_date.isoformat(), "status": record.status},
        )
        return record

    def _store_totals(self, record: ClockRecord, config: AttendanceConfig | None = None) -> None:
        totals = compute_daily_totals(record, config or self.config)
        record.total_work_minutes = totals.minutes
        record.overtime_minutes = totals.overtime_minutes
        record.is_invalid = totals.invalid
        record.anomaly_reason = totals.reason
        if totals.invalid:
            anomaly = DataAnomalyError(record.id, totals.reason or "invalid durations")
            logger.warning(
                str(anomaly),
                extra={"employee_id": record.employee_id, "work_date": record.work_date.isoformat()},
            )

    # Auto clock-out

    def auto_close_time(self, work_date: date, shift_end: time | None = None) -> datetime:
        """Midnight after the work date, or shift end + 1h for night shifts."""
        next_day = datetime.combine(work_date + timedelta(days=1), time(0, 0))
        if shift_end is not None and shift_end <= NIGHT_SHIFT_END_LATEST:
            return datetime.combine(work_date + timedelta(days=1), shift_end) + timedelta(hours=1)
        return next_day

    async def auto_close_open_records(
        self,
        today: date | None = None,
        shift_ends: Mapping[int, time] | None = None,
    ) -> AutoCloseReport:
        """Close records left working or on break from earlier work dates.

        Minutes are capped at ``auto_close_cap_minutes``, overtime is zero and
        the record is flagged for admin review.
        """
        today = today or self.clock().date()
        shift_ends = shift_ends or {}
        report = AutoCloseReport()

        async with self.session_factory() as session:
            repo = self.repository(session)
            open_ids = [r.id for r in await repo.list_open_clock_records(before=today)]

        for record_id in open_ids:
            try:
                closed = await self._auto_close_one(record_id, shift_ends)
            except SQLAlchemyError as exc:
                report.errors.append({"record_id": record_id, "error": type(exc).__name__})
                logger.error("Auto clock-out failed", extra={"record_id": record_id}, exc_info=True)
                continue
            (report.closed if closed else report.skipped).append(record_id)

        logger.info(
            "Auto clock-out finished: %d closed, %d skipped, %d errors",
            len(report.closed), len(report.skipped), len(report.errors),
        )
        return report

    async def _auto_close_one(self, record_id: int, shift_ends: Mapping[int, time]) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                repo = self.repository(session)
                record = await repo.get_clock_record(record_id, for_update=True)
                if record is None:
                    return False
                phase = ClockStateMachine.phase_of(record)
                if phase not in ClockStateMachine.OPEN_PHASES:
                    return False

                if phase is not ClockPhase.ON_BREAK:
                    record.clock_out_2 = self.auto_close_time(
                        record.work_date, shift_ends.get(record.employee_id)
                    )
                record.status = ClockPhase.AUTO_CLOSED.value
                record.needs_review = True
                record.auto_close_reason = AUTO_CLOSE_REASON
                record.version += 1

                lenient = replace(self.config, max_session_minutes=2 * MINUTES_PER_DAY)
                self._store_totals(record, lenient)
                if not record.is_invalid:
                    record.total_work_minutes = min(
                        record.total_work_minutes or 0, self.config.auto_close_cap_minutes
                    )
                    record.overtime_minutes = 0
                await repo.upsert_clock_record(record)
        return True
