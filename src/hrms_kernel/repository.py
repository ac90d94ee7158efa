"""Record store access for the kernel.

``KernelRepository`` is the seam the services depend on; the SQLAlchemy
implementation works against the externally owned tables. All methods run
inside the caller's session/transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Protocol, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_kernel.models import (
    MEDIA_FIELDS,
    ClockRecord,
    Employee,
    PayrollItem,
    PayrollRun,
    RetentionLog,
    SalaryAdvance,
)

OPEN_STATUSES = ("working", "on_break")


@dataclass(frozen=True)
class RetentionCounts:
    total: int
    pending: int
    overdue: int
    completed: int


class KernelRepository(Protocol):
    """Operations the kernel needs from the record store."""

    async def find_clock_record(
        self, employee_id: int, work_date: date, for_update: bool = False
    ) -> ClockRecord | None: ...

    async def get_clock_record(
        self, record_id: int, for_update: bool = False
    ) -> ClockRecord | None: ...

    async def upsert_clock_record(self, record: ClockRecord) -> ClockRecord: ...

    async def list_open_clock_records(self, before: date) -> Sequence[ClockRecord]: ...

    async def list_eligible_for_retention(self, cutoff: date, limit: int) -> Sequence[int]: ...

    async def clear_media(
        self, record_id: int, fields: Sequence[str], deleted_at: datetime
    ) -> None: ...

    async def append_retention_log(self, entry: RetentionLog) -> None: ...

    async def retention_counts(self, soft_cutoff: date, hard_cutoff: date) -> RetentionCounts: ...

    async def get_employee(self, employee_id: int) -> Employee | None: ...

    async def list_active_employees(self, company_id: int) -> Sequence[Employee]: ...

    async def get_run(
        self, company_id: int, year: int, month: int, for_update: bool = False
    ) -> PayrollRun | None: ...

    async def get_or_create_run(self, company_id: int, year: int, month: int) -> PayrollRun: ...

    async def find_payroll_items(
        self, employee_id: int, year: int, up_to_month: int
    ) -> Sequence[PayrollItem]: ...

    async def find_payroll_item(self, run_id: int, employee_id: int) -> PayrollItem | None: ...

    async def insert_payroll_item(self, item: PayrollItem) -> PayrollItem: ...

    async def list_active_advances(self, employee_id: int) -> Sequence[SalaryAdvance]: ...


RepositoryFactory = Callable[[AsyncSession], KernelRepository]


class SqlAlchemyRepository:
    """``KernelRepository`` over an ``AsyncSession``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Clock records

    async def find_clock_record(
        self, employee_id: int, work_date: date, for_update: bool = False
    ) -> ClockRecord | None:
        stmt = select(ClockRecord).where(
            ClockRecord.employee_id == employee_id,
            ClockRecord.work_date == work_date,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_clock_record(
        self, record_id: int, for_update: bool = False
    ) -> ClockRecord | None:
        stmt = select(ClockRecord).where(ClockRecord.id == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_clock_record(self, record: ClockRecord) -> ClockRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_open_clock_records(self, before: date) -> Sequence[ClockRecord]:
        """Records still working or on break from work dates before ``before``."""
        result = await self.session.execute(
            select(ClockRecord)
            .where(
                ClockRecord.work_date < before,
                ClockRecord.status.in_(OPEN_STATUSES),
            )
            .order_by(ClockRecord.work_date, ClockRecord.id)
        )
        return result.scalars().all()

    # Retention

    @staticmethod
    def _has_media():
        return or_(*(getattr(ClockRecord, name).is_not(None) for name in MEDIA_FIELDS))

    async def list_eligible_for_retention(self, cutoff: date, limit: int) -> Sequence[int]:
        """Ids of closed records with media still present and eligible on or before cutoff.

        Records still working or on break are excluded.
        """
        result = await self.session.execute(
            select(ClockRecord.id)
            .where(
                ClockRecord.media_deleted_at.is_(None),
                ClockRecord.status.not_in(OPEN_STATUSES),
                ClockRecord.media_retention_eligible_at.is_not(None),
                ClockRecord.media_retention_eligible_at <= cutoff,
                self._has_media(),
            )
            .order_by(ClockRecord.work_date, ClockRecord.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def clear_media(
        self, record_id: int, fields: Sequence[str], deleted_at: datetime
    ) -> None:
        values = {name: None for name in fields}
        values["media_deleted_at"] = deleted_at
        await self.session.execute(
            update(ClockRecord).where(ClockRecord.id == record_id).values(**values)
        )

    async def append_retention_log(self, entry: RetentionLog) -> None:
        self.session.add(entry)
        await self.session.flush()

    async def retention_counts(self, soft_cutoff: date, hard_cutoff: date) -> RetentionCounts:
        not_deleted = and_(ClockRecord.media_deleted_at.is_(None), self._has_media())
        eligible_at = ClockRecord.media_retention_eligible_at

        async def count(*criteria) -> int:
            stmt = select(func.count(ClockRecord.id))
            if criteria:
                stmt = stmt.where(*criteria)
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

        return RetentionCounts(
            total=await count(),
            pending=await count(not_deleted, eligible_at <= soft_cutoff),
            overdue=await count(not_deleted, eligible_at <= hard_cutoff),
            completed=await count(ClockRecord.media_deleted_at.is_not(None)),
        )

    # Payroll

    async def get_employee(self, employee_id: int) -> Employee | None:
        return await self.session.get(Employee, employee_id)

    async def list_active_employees(self, company_id: int) -> Sequence[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.company_id == company_id, Employee.status == "active")
            .order_by(Employee.id)
        )
        return result.scalars().all()

    async def get_run(
        self, company_id: int, year: int, month: int, for_update: bool = False
    ) -> PayrollRun | None:
        stmt = select(PayrollRun).where(
            PayrollRun.company_id == company_id,
            PayrollRun.year == year,
            PayrollRun.month == month,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_run(self, company_id: int, year: int, month: int) -> PayrollRun:
        run = await self.get_run(company_id, year, month, for_update=True)
        if run is None:
            run = PayrollRun(company_id=company_id, year=year, month=month, status="draft")
            self.session.add(run)
            await self.session.flush()
        return run

    async def find_payroll_items(
        self, employee_id: int, year: int, up_to_month: int
    ) -> Sequence[PayrollItem]:
        """Items for the employee in ``year`` with month < ``up_to_month``."""
        result = await self.session.execute(
            select(PayrollItem)
            .where(
                PayrollItem.employee_id == employee_id,
                PayrollItem.year == year,
                PayrollItem.month < up_to_month,
            )
            .order_by(PayrollItem.month)
        )
        return result.scalars().all()

    async def find_payroll_item(self, run_id: int, employee_id: int) -> PayrollItem | None:
        result = await self.session.execute(
            select(PayrollItem)
            .where(PayrollItem.payroll_run_id == run_id, PayrollItem.employee_id == employee_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def insert_payroll_item(self, item: PayrollItem) -> PayrollItem:
        self.session.add(item)
        await self.session.flush()
        return item

    async def list_active_advances(self, employee_id: int) -> Sequence[SalaryAdvance]:
        result = await self.session.execute(
            select(SalaryAdvance)
            .where(
                SalaryAdvance.employee_id == employee_id,
                SalaryAdvance.status.in_(("pending", "active")),
                SalaryAdvance.remaining_balance > 0,
            )
            .order_by(SalaryAdvance.id)
            .with_for_update()
        )
        return result.scalars().all()
