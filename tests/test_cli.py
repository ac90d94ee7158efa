"""Tests for the operator CLI against a file-backed SQLite database."""

import asyncio
import io
from datetime import date, datetime, timedelta

import pytest

from conftest import SELFIE_B64
from hrms_kernel.cli import KernelCli
from hrms_kernel.database import get_engine, make_session_factory
from hrms_kernel.models import Base, ClockRecord, Employee
from hrms_kernel.repository import SqlAlchemyRepository

TODAY = date(2025, 9, 1)


@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'hrms.db'}"

    async def seed() -> None:
        engine = get_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = make_session_factory(engine)
        async with factory() as session:
            async with session.begin():
                employee = Employee(
                    company_id=1, employee_code="E001", name="Lau Jia Cheng", basic_salary=10000
                )
                session.add(employee)
                await session.flush()
                old = TODAY - timedelta(days=200)
                session.add(
                    ClockRecord(
                        employee_id=employee.id,
                        company_id=1,
                        work_date=old,
                        status="completed",
                        clock_in_1=datetime(old.year, old.month, old.day, 9, 0),
                        clock_out_2=datetime(old.year, old.month, old.day, 18, 0),
                        photo_in_1=SELFIE_B64,
                        address_in_1="Jalan Ampang, Kuala Lumpur",
                        media_retention_eligible_at=old,
                    )
                )
                yesterday = TODAY - timedelta(days=1)
                session.add(
                    ClockRecord(
                        employee_id=employee.id,
                        company_id=1,
                        work_date=yesterday,
                        status="working",
                        clock_in_1=datetime(yesterday.year, yesterday.month, yesterday.day, 9, 0),
                        media_retention_eligible_at=yesterday,
                    )
                )
        await engine.dispose()

    asyncio.run(seed())
    return url


def media_left(url: str) -> int:
    async def count() -> int:
        engine = get_engine(url)
        try:
            async with make_session_factory(engine)() as session:
                counts = await SqlAlchemyRepository(session).retention_counts(TODAY, TODAY)
                return counts.pending
        finally:
            await engine.dispose()

    return asyncio.run(count())


def run_cli(*args: str) -> tuple[int, str, str]:
    stdout, stderr = io.StringIO(), io.StringIO()
    code = KernelCli(stdout=stdout, stderr=stderr).run(list(args))
    return code, stdout.getvalue(), stderr.getvalue()


class TestKernelCli:
    def test_no_command_prints_help(self):
        code, out, _ = run_cli()
        assert code == 1
        assert "retention-sweep" in out

    def test_batch_must_be_positive(self):
        with pytest.raises(SystemExit):
            run_cli("retention-sweep", "--batch", "0")

    def test_dry_run(self, database_url):
        code, out, _ = run_cli(
            "--database-url", database_url, "retention-sweep", "--dry-run", "--date", "2025-09-01"
        )

        assert code == 0
        assert "Retention Sweep Summary [DRY RUN]" in out
        assert "Processed:  1" in out
        assert "Deleted:    0" in out
        assert media_left(database_url) == 1

    def test_sweep_then_compliance(self, database_url):
        code, out, _ = run_cli(
            "--database-url", database_url, "retention-sweep", "--date", "2025-09-01", "--batch", "10"
        )

        assert code == 0
        assert "Deleted:    1" in out
        assert "Retention sweep finished" in out
        assert media_left(database_url) == 0

        code, out, _ = run_cli("--database-url", database_url, "compliance", "--date", "2025-09-01")
        assert code == 0
        assert "Completed:  1" in out
        assert "Overdue:    0" in out

    def test_auto_close(self, database_url):
        code, out, _ = run_cli("--database-url", database_url, "auto-close", "--date", "2025-09-01")

        assert code == 0
        assert "Closed:     1" in out
