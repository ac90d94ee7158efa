"""Pytest fixtures for HRMS kernel tests."""

from __future__ import annotations

import base64
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hrms_kernel.attendance.face_check import DetectedFace, ImageAnalysis, REQUIRED_LANDMARKS
from hrms_kernel.calculators.types import EmployeeProfile, EmploymentClass
from hrms_kernel.config import RuleConfig
from hrms_kernel.database import make_session_factory
from hrms_kernel.logging_config import reset_logging
from hrms_kernel.models import Base, ClockRecord, Employee

# In-memory SQLite shared across sessions through a single connection.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SELFIE_B64 = base64.b64encode(b"\xff\xd8\xff\xe0 fake jpeg bytes").decode()


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with the schema applied."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def _reset_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def rule_config() -> RuleConfig:
    return RuleConfig()


def make_profile(**overrides) -> EmployeeProfile:
    """Full-time employee born 1 Jan 1990, single, no children."""
    values = dict(
        employee_id=1,
        ic_number="900101-14-5678",
        employment_class=EmploymentClass.CONFIRMED,
        basic_salary=Decimal("4300"),
    )
    values.update(overrides)
    return EmployeeProfile(**values)


def good_analysis(**overrides) -> ImageAnalysis:
    """Analysis of a well-lit, sharp selfie with one clear face."""
    values = dict(
        width=640,
        height=480,
        faces=[DetectedFace(0.95, 220, 260, frozenset(REQUIRED_LANDMARKS))],
        brightness=120.0,
        sharpness=350.0,
    )
    values.update(overrides)
    return ImageAnalysis(**values)


class StubAnalyzer:
    """FaceAnalyzer returning a fixed analysis and counting calls."""

    def __init__(self, analysis: ImageAnalysis | None = None):
        self.analysis = analysis or good_analysis()
        self.calls = 0

    def analyze(self, image: bytes) -> ImageAnalysis:
        self.calls += 1
        return self.analysis


class StubGeocoder:
    def __init__(self, address: str = "Jalan Ampang, Kuala Lumpur"):
        self.address = address
        self.calls = 0

    async def reverse(self, fix) -> str:
        self.calls += 1
        return self.address


class FailingGeocoder:
    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def reverse(self, fix) -> str:
        self.calls += 1
        raise self.error


class SteppingClock:
    """Returns the queued timestamps in order."""

    def __init__(self, *stamps: datetime):
        self.stamps = list(stamps)

    def __call__(self) -> datetime:
        return self.stamps.pop(0)


async def add_employee(session_factory, **overrides) -> Employee:
    values = dict(
        company_id=1,
        employee_code="E001",
        name="Leong Xia Hwei",
        ic_number="900101-14-5678",
        basic_salary=Decimal("4300"),
    )
    values.update(overrides)
    async with session_factory() as session:
        async with session.begin():
            employee = Employee(**values)
            session.add(employee)
    return employee


async def add_clock_record(session_factory, employee_id: int, work_date: date, **overrides) -> ClockRecord:
    values = dict(
        employee_id=employee_id,
        company_id=1,
        work_date=work_date,
        status="not_started",
        media_retention_eligible_at=work_date,
    )
    values.update(overrides)
    async with session_factory() as session:
        async with session.begin():
            record = ClockRecord(**values)
            session.add(record)
    return record
