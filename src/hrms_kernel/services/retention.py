"""Media retention sweep for clock records.

Selfies and reverse-geocoded addresses are personal data. They are cleared
once a record's ``media_retention_eligible_at`` is older than the soft
window; the record itself, timestamps and coordinates, is kept. Each record
is cleared in its own transaction with an audit row, so a failure on one
record never blocks the others and a rerun picks up where the last left off.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_kernel.config import RetentionConfig
from hrms_kernel.exceptions import StoreFailureError
from hrms_kernel.models import RetentionLog
from hrms_kernel.repository import (
    OPEN_STATUSES,
    RepositoryFactory,
    RetentionCounts,
    SqlAlchemyRepository,
)

logger = logging.getLogger(__name__)

RETENTION_POLICY = "6_month_media"


def subtract_months(day: date, months: int) -> date:
    """Same day ``months`` earlier, clamped to the end of shorter months."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


@dataclass
class RetentionReport:
    """Outcome of one sweep plus the compliance counts taken after it."""

    today: date
    cutoff: date
    dry_run: bool = False
    force: bool = False
    processed: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    cancelled: bool = False
    planned: list[dict[str, Any]] = field(default_factory=list)
    error_details: list[dict[str, Any]] = field(default_factory=list)
    compliance: RetentionCounts | None = None

    @property
    def exit_code(self) -> int:
        return 1 if self.errors else 0


class RetentionSweeper:
    """Clears media from clock records past the retention window.

    ``force`` moves the cutoff to today so every closed record with media
    is cleared; records still working or on break are never swept. Records
    whose eligibility is past the hard window are reported as overdue by
    ``compliance_counts``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: RetentionConfig | None = None,
        now: Callable[[], datetime] | None = None,
        repository: RepositoryFactory = SqlAlchemyRepository,
    ):
        self.session_factory = session_factory
        self.config = config or RetentionConfig()
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.repository = repository

    def cutoff_for(self, today: date, force: bool = False) -> date:
        if force:
            return today
        return subtract_months(today, self.config.soft_delete_months)

    async def sweep(
        self,
        today: date | None = None,
        dry_run: bool = False,
        force: bool = False,
        batch_size: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> RetentionReport:
        today = today or self.now().date()
        batch_size = batch_size or self.config.batch_size
        cutoff = self.cutoff_for(today, force)
        report = RetentionReport(today=today, cutoff=cutoff, dry_run=dry_run, force=force)

        logger.info(
            "Retention sweep starting",
            extra={"cutoff": cutoff.isoformat(), "dry_run": dry_run, "force": force},
        )

        candidates = await self._candidates(cutoff, self.config.max_records_per_run)
        for start in range(0, len(candidates), batch_size):
            if stop_event is not None and stop_event.is_set():
                report.cancelled = True
                logger.warning("Retention sweep cancelled", extra={"processed": report.processed})
                break
            for record_id in candidates[start:start + batch_size]:
                await self._process(record_id, cutoff, dry_run, report)

        report.compliance = await self.compliance_counts(today)
        logger.info(
            "Retention sweep finished",
            extra={
                "processed": report.processed,
                "deleted": report.deleted,
                "skipped": report.skipped,
                "errors": report.errors,
            },
        )
        return report

    async def compliance_counts(self, today: date) -> RetentionCounts:
        soft_cutoff = subtract_months(today, self.config.soft_delete_months)
        hard_cutoff = subtract_months(today, self.config.hard_delete_months)
        async with self.session_factory() as session:
            counts = await self.repository(session).retention_counts(soft_cutoff, hard_cutoff)
        if counts.overdue:
            logger.warning(
                "%d records hold media past the %d-month limit",
                counts.overdue,
                self.config.hard_delete_months,
            )
        return counts

    async def _candidates(self, cutoff: date, limit: int) -> list[int]:
        async with self.session_factory() as session:
            repo = self.repository(session)
            return list(await repo.list_eligible_for_retention(cutoff, limit))

    async def _process(
        self, record_id: int, cutoff: date, dry_run: bool, report: RetentionReport
    ) -> None:
        report.processed += 1
        if dry_run:
            await self._plan(record_id, report)
            return
        try:
            cleared = await self._clear_one(record_id, cutoff)
        except (SQLAlchemyError, StoreFailureError) as exc:
            report.errors += 1
            report.error_details.append({"record_id": record_id, "error": str(exc)})
            logger.error("Failed to clear media", extra={"record_id": record_id}, exc_info=True)
            return
        if cleared:
            report.deleted += 1
        else:
            report.skipped += 1

    async def _plan(self, record_id: int, report: RetentionReport) -> None:
        async with self.session_factory() as session:
            record = await self.repository(session).get_clock_record(record_id)
            if record is None:
                report.skipped += 1
                return
            fields_present = record.media_present()
            report.planned.append(
                {
                    "record_id": record.id,
                    "employee_id": record.employee_id,
                    "work_date": record.work_date.isoformat(),
                    "fields": fields_present,
                }
            )
            logger.info(
                "Would clear %d media fields",
                len(fields_present),
                extra={"record_id": record.id, "work_date": record.work_date.isoformat()},
            )

    async def _clear_one(self, record_id: int, cutoff: date) -> bool:
        """Clear one record's media and append its audit row atomically.

        Returns False when the record no longer qualifies, which happens when
        another sweep got there first.
        """
        deleted_at = self.now()
        async with self.session_factory() as session:
            async with session.begin():
                repo = self.repository(session)
                record = await repo.get_clock_record(record_id, for_update=True)
                if (
                    record is None
                    or record.media_deleted_at is not None
                    or record.status in OPEN_STATUSES
                    or record.media_retention_eligible_at is None
                    or record.media_retention_eligible_at > cutoff
                ):
                    return False
                cleared = record.media_present()
                if not cleared:
                    return False

                await repo.clear_media(record.id, cleared, deleted_at)
                await session.refresh(record)
                remaining = record.media_present()
                if remaining:
                    raise StoreFailureError(
                        "clear_media", record.id, f"fields still present: {remaining}"
                    )

                await repo.append_retention_log(
                    RetentionLog(
                        table_name="clock_record",
                        record_id=record.id,
                        data_type="media",
                        retention_policy=RETENTION_POLICY,
                        record_date=record.work_date,
                        employee_id=record.employee_id,
                        company_id=record.company_id,
                        fields_cleared=cleared,
                        deleted_at=deleted_at,
                        deletion_verified=True,
                        details={"cutoff": cutoff.isoformat()},
                    )
                )
        logger.debug("Cleared media", extra={"record_id": record_id, "fields": len(cleared)})
        return True


async def run_retention_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    config: RetentionConfig | None = None,
    today: date | None = None,
    dry_run: bool = False,
    force: bool = False,
    batch_size: int | None = None,
    stop_event: asyncio.Event | None = None,
) -> RetentionReport:
    """Run one sweep with a fresh ``RetentionSweeper``."""
    sweeper = RetentionSweeper(session_factory, config)
    return await sweeper.sweep(
        today=today,
        dry_run=dry_run,
        force=force,
        batch_size=batch_size,
        stop_event=stop_event,
    )
