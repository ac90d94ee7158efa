"""Serialisation of clock transitions per (employee, work_date)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from hrms_kernel.database import try_advisory_lock
from hrms_kernel.exceptions import StaleStateError


def clock_lock_key(employee_id: int, work_date: date) -> str:
    return f"clock:{employee_id}:{work_date.isoformat()}"


class ClockLockRegistry:
    """At most one in-flight transition per (employee, work_date).

    Two layers:
    1. An in-process key set, so a second request in the same worker fails
       fast without touching the database.
    2. A transaction-scoped advisory lock on Postgres for requests landing on
       other workers.

    A request that finds the key taken loses the race and gets
    StaleStateError; it never waits.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, employee_id: int, work_date: date) -> bool:
        return clock_lock_key(employee_id, work_date) in self._held

    @asynccontextmanager
    async def hold(
        self,
        session: AsyncSession,
        employee_id: int,
        work_date: date,
    ) -> AsyncIterator[None]:
        key = clock_lock_key(employee_id, work_date)
        if key in self._held:
            raise StaleStateError(employee_id, work_date, "transition already in flight")
        self._held.add(key)
        try:
            if not await try_advisory_lock(session, key):
                raise StaleStateError(employee_id, work_date, "locked by another worker")
            yield
        finally:
            self._held.discard(key)
