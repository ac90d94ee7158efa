"""Tests for the attendance media retention sweep."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import SELFIE_B64, SteppingClock, StubAnalyzer, StubGeocoder, add_clock_record, add_employee
from hrms_kernel.attendance.geocoding import GpsFix
from hrms_kernel.config import RetentionConfig
from hrms_kernel.models import MEDIA_FIELDS, RetentionLog
from hrms_kernel.repository import SqlAlchemyRepository
from hrms_kernel.services.clock_service import ClockService
from hrms_kernel.services.retention import RetentionSweeper, run_retention_sweep, subtract_months

TODAY = date(2025, 9, 1)
NOW = datetime(2025, 9, 1, 3, 0, tzinfo=timezone.utc)


def full_media(day: date) -> dict:
    """Clock record fields for a completed day with every photo and address."""
    values = dict(status="completed", media_retention_eligible_at=day)
    for hour, slot in zip((9, 13, 14, 18), ("in_1", "out_1", "in_2", "out_2")):
        values[f"clock_{slot}"] = datetime(day.year, day.month, day.day, hour, 0)
        values[f"photo_{slot}"] = SELFIE_B64
        values[f"address_{slot}"] = "Jalan Ampang, Kuala Lumpur"
        values[f"location_{slot}"] = "3.157764,101.711861"
        values[f"face_detected_{slot}"] = True
    return values


async def add_media_record(session_factory, employee_id, days_ago, **overrides):
    day = TODAY - timedelta(days=days_ago)
    values = full_media(day)
    values.update(overrides)
    return await add_clock_record(session_factory, employee_id, day, **values)


async def load(session_factory, record_id):
    async with session_factory() as session:
        return await SqlAlchemyRepository(session).get_clock_record(record_id)


async def retention_logs(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(RetentionLog).order_by(RetentionLog.id))
        return result.scalars().all()


@pytest.fixture
def sweeper(session_factory) -> RetentionSweeper:
    return RetentionSweeper(session_factory, RetentionConfig(), now=lambda: NOW)


class TestSweep:
    """Clearing media past the soft window."""

    @pytest.mark.asyncio
    async def test_clears_media_and_keeps_attendance(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        record = await add_media_record(session_factory, employee.id, days_ago=200)

        report = await sweeper.sweep(TODAY)

        assert report.processed == 1
        assert report.deleted == 1
        assert report.errors == 0
        assert report.exit_code == 0

        cleared = await load(session_factory, record.id)
        for name in MEDIA_FIELDS:
            assert getattr(cleared, name) is None
        assert cleared.media_deleted_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        assert cleared.clock_in_1 == record.clock_in_1
        assert cleared.clock_out_2 == record.clock_out_2
        assert cleared.face_detected_in_1 is True
        assert cleared.location_out_2 == "3.157764,101.711861"

        (log,) = await retention_logs(session_factory)
        assert log.record_id == record.id
        assert sorted(log.fields_cleared) == sorted(MEDIA_FIELDS)
        assert log.retention_policy == "6_month_media"
        assert log.deletion_verified
        assert log.employee_id == employee.id
        assert log.details == {"cutoff": "2025-03-01"}

    @pytest.mark.asyncio
    async def test_rerun_is_a_no_op(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        await add_media_record(session_factory, employee.id, days_ago=200)

        await sweeper.sweep(TODAY)
        second = await sweeper.sweep(TODAY)

        assert second.processed == 0
        assert second.deleted == 0
        assert len(await retention_logs(session_factory)) == 1

    @pytest.mark.asyncio
    async def test_recent_records_untouched(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        record = await add_media_record(session_factory, employee.id, days_ago=30)

        report = await sweeper.sweep(TODAY)

        assert report.processed == 0
        assert (await load(session_factory, record.id)).photo_in_1 == SELFIE_B64

    @pytest.mark.asyncio
    async def test_force_clears_everything(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        record = await add_media_record(session_factory, employee.id, days_ago=30)

        report = await sweeper.sweep(TODAY, force=True)

        assert report.cutoff == TODAY
        assert report.deleted == 1
        assert (await load(session_factory, record.id)).photo_in_1 is None

    @pytest.mark.asyncio
    async def test_open_records_are_left_alone(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        day = TODAY - timedelta(days=200)
        record = await add_clock_record(
            session_factory,
            employee.id,
            day,
            status="on_break",
            clock_in_1=datetime(day.year, day.month, day.day, 9, 0),
            clock_out_1=datetime(day.year, day.month, day.day, 13, 0),
            photo_in_1=SELFIE_B64,
            photo_out_1=SELFIE_B64,
        )

        report = await sweeper.sweep(TODAY, force=True)

        assert report.processed == 0
        assert (await load(session_factory, record.id)).media_deleted_at is None
        assert report.compliance.pending == 1

    @pytest.mark.asyncio
    async def test_only_present_fields_are_logged(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        day = TODAY - timedelta(days=200)
        await add_clock_record(
            session_factory,
            employee.id,
            day,
            status="auto_closed",
            clock_in_1=datetime(day.year, day.month, day.day, 9, 0),
            photo_in_1=SELFIE_B64,
            address_in_1="Jalan Ampang, Kuala Lumpur",
        )

        await sweeper.sweep(TODAY)

        (log,) = await retention_logs(session_factory)
        assert log.fields_cleared == ["photo_in_1", "address_in_1"]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        record = await add_media_record(session_factory, employee.id, days_ago=200)

        report = await sweeper.sweep(TODAY, dry_run=True)

        assert report.processed == 1
        assert report.deleted == 0
        assert report.planned[0]["record_id"] == record.id
        assert len(report.planned[0]["fields"]) == 8
        assert (await load(session_factory, record.id)).photo_in_1 == SELFIE_B64
        assert await retention_logs(session_factory) == []


class FlakyRepository(SqlAlchemyRepository):
    """Store whose media clearing fails for chosen record ids."""

    def __init__(self, session, fail_ids, silent=False):
        super().__init__(session)
        self.fail_ids = fail_ids
        self.silent = silent

    async def clear_media(self, record_id, fields, deleted_at):
        if record_id in self.fail_ids:
            if self.silent:
                return
            raise OperationalError("UPDATE clock_record", {}, Exception("database is locked"))
        await super().clear_media(record_id, fields, deleted_at)


class TestStoreFailures:
    """One record failing does not stop the others."""

    def flaky_sweeper(self, session_factory, fail_ids, silent=False) -> RetentionSweeper:
        return RetentionSweeper(
            session_factory,
            RetentionConfig(),
            now=lambda: NOW,
            repository=lambda session: FlakyRepository(session, fail_ids, silent),
        )

    @pytest.mark.asyncio
    async def test_database_error_is_counted(self, session_factory):
        employee = await add_employee(session_factory)
        first = await add_media_record(session_factory, employee.id, days_ago=300)
        second = await add_media_record(session_factory, employee.id, days_ago=250)
        third = await add_media_record(session_factory, employee.id, days_ago=200)

        report = await self.flaky_sweeper(session_factory, {second.id}).sweep(TODAY)

        assert report.processed == 3
        assert report.deleted == 2
        assert report.errors == 1
        assert report.exit_code == 1
        assert report.error_details[0]["record_id"] == second.id
        assert (await load(session_factory, first.id)).photo_in_1 is None
        assert (await load(session_factory, third.id)).photo_in_1 is None

        kept = await load(session_factory, second.id)
        assert kept.photo_in_1 == SELFIE_B64
        assert kept.media_deleted_at is None
        assert [log.record_id for log in await retention_logs(session_factory)] == [
            first.id,
            third.id,
        ]

    @pytest.mark.asyncio
    async def test_unverified_clear_is_rolled_back(self, session_factory):
        employee = await add_employee(session_factory)
        record = await add_media_record(session_factory, employee.id, days_ago=200)

        report = await self.flaky_sweeper(session_factory, {record.id}, silent=True).sweep(TODAY)

        assert report.errors == 1
        assert "fields still present" in report.error_details[0]["error"]
        assert await retention_logs(session_factory) == []

        rerun = await RetentionSweeper(session_factory, now=lambda: NOW).sweep(TODAY)
        assert rerun.deleted == 1


class TestBatching:
    @pytest.mark.asyncio
    async def test_small_batches(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        for days_ago in (200, 201, 202):
            await add_media_record(session_factory, employee.id, days_ago=days_ago)

        report = await sweeper.sweep(TODAY, batch_size=1)

        assert report.deleted == 3

    @pytest.mark.asyncio
    async def test_run_limit(self, session_factory):
        employee = await add_employee(session_factory)
        for days_ago in (200, 201, 202):
            await add_media_record(session_factory, employee.id, days_ago=days_ago)
        sweeper = RetentionSweeper(
            session_factory, RetentionConfig(max_records_per_run=2), now=lambda: NOW
        )

        report = await sweeper.sweep(TODAY)

        assert report.deleted == 2
        assert report.compliance.pending == 1

    @pytest.mark.asyncio
    async def test_stop_event_cancels(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        await add_media_record(session_factory, employee.id, days_ago=200)
        stop = asyncio.Event()
        stop.set()

        report = await sweeper.sweep(TODAY, stop_event=stop)

        assert report.cancelled
        assert report.processed == 0


class TestCompliance:
    @pytest.mark.asyncio
    async def test_counts_before_and_after(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        for days_ago in (400, 200, 10):
            await add_media_record(session_factory, employee.id, days_ago=days_ago)

        before = await sweeper.compliance_counts(TODAY)
        report = await sweeper.sweep(TODAY)

        assert (before.total, before.pending, before.overdue, before.completed) == (3, 2, 1, 0)
        after = report.compliance
        assert (after.total, after.pending, after.overdue, after.completed) == (3, 0, 0, 2)

    @pytest.mark.asyncio
    async def test_module_entry_point(self, session_factory):
        employee = await add_employee(session_factory)
        await add_media_record(session_factory, employee.id, days_ago=200)

        report = await run_retention_sweep(session_factory, today=TODAY)

        assert report.deleted == 1


class TestSubtractMonths:
    @pytest.mark.parametrize(
        "day,months,expected",
        [
            (date(2025, 9, 1), 6, date(2025, 3, 1)),
            (date(2025, 8, 31), 6, date(2025, 2, 28)),
            (date(2025, 1, 15), 1, date(2024, 12, 15)),
            (date(2024, 8, 29), 6, date(2024, 2, 29)),
            (date(2025, 3, 31), 12, date(2024, 3, 31)),
        ],
    )
    def test_subtract(self, day, months, expected):
        assert subtract_months(day, months) == expected


class TestSweepAndClockEvents:
    """Media written after a sweep stays under retention."""

    WORK_DATE = date(2025, 1, 6)
    LATER = date(2027, 1, 6)

    def clock_service(self, session_factory, *stamps) -> ClockService:
        return ClockService(
            session_factory,
            analyzer=StubAnalyzer(),
            geocoder=StubGeocoder(),
            clock=SteppingClock(*stamps),
        )

    async def record(self, service, employee_id, event):
        result = await service.record_clock_event(
            employee_id, self.WORK_DATE, event, SELFIE_B64, GpsFix(3.157764, 101.711861)
        )
        assert result.accepted, result.message
        return result.record

    @pytest.mark.asyncio
    async def test_forced_sweep_waits_for_the_day_to_close(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        service = self.clock_service(
            session_factory, datetime(2025, 1, 6, 9, 0), datetime(2025, 1, 6, 18, 0)
        )

        opened = await self.record(service, employee.id, "clock_in_1")
        first = await sweeper.sweep(self.WORK_DATE, force=True)
        await self.record(service, employee.id, "clock_out_2")
        second = await sweeper.sweep(self.LATER)

        assert first.deleted == 0
        assert second.deleted == 1
        cleared = await load(session_factory, opened.id)
        assert cleared.photo_in_1 is None
        assert cleared.photo_out_2 is None
        assert cleared.address_out_2 is None
        compliance = second.compliance
        assert (compliance.pending, compliance.overdue, compliance.completed) == (0, 0, 1)

    @pytest.mark.asyncio
    async def test_clock_event_on_swept_record_resets_deletion(self, session_factory, sweeper):
        employee = await add_employee(session_factory)
        swept = await add_clock_record(
            session_factory,
            employee.id,
            self.WORK_DATE,
            status="working",
            clock_in_1=datetime(2025, 1, 6, 9, 0),
            location_in_1="3.157764,101.711861",
            face_detected_in_1=True,
            media_deleted_at=datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc),
            version=1,
        )
        service = self.clock_service(session_factory, datetime(2025, 1, 6, 18, 0))

        await self.record(service, employee.id, "clock_out_2")

        reopened = await load(session_factory, swept.id)
        assert reopened.media_deleted_at is None
        assert reopened.photo_out_2 == SELFIE_B64
        before = await sweeper.compliance_counts(self.LATER)
        assert (before.pending, before.overdue) == (1, 1)

        report = await sweeper.sweep(self.LATER)

        assert report.deleted == 1
        assert (await load(session_factory, swept.id)).photo_out_2 is None
        (log,) = await retention_logs(session_factory)
        assert log.fields_cleared == ["photo_out_2", "address_out_2"]
