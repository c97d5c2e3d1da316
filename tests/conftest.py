"""
Shared test fixtures for the attendance test suite.

Every test gets its own in-memory SQLite database (aiosqlite), a pinned
clock and a recording audit sink, all injected through ``create_app``.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest

# Override environment BEFORE importing application modules
# Use async sqlite driver
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
# CORS fix (JSON format)
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TIMEZONE_OFFSET"] = "+00:00"

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.api.v1.deps import get_current_identity
from hrms.core.clock import Clock
from hrms.core.security import Identity
from hrms.db.session import Database
from hrms.main import create_app
from hrms.models.employee import AttendanceSession, Employee

# Monday morning, UTC
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.current = now
        self._mono = 0.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self._mono

    def advance(self, **kwargs: float) -> datetime:
        delta = timedelta(**kwargs)
        self.current += delta
        self._mono += delta.total_seconds()
        return self.current


class RecordingAuditSink:
    def __init__(self) -> None:
        self.reports: list[dict] = []

    async def report_suspicious(self, **kwargs) -> None:
        self.reports.append(kwargs)


@pytest.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Create all tables before usage and drop after."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def app(database: Database, clock: FixedClock, audit_sink: RecordingAuditSink) -> FastAPI:
    return create_app(database=database, clock=clock, audit_sink=audit_sink)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with database.session_factory() as session:
        yield session


# ── Domain fixtures ─────────────────────────────────────────────────
async def make_employee(
    db: AsyncSession,
    code: str = "EMP001",
    name: str = "Ayesha Khan",
    employee_type: str = "Full-time",
) -> Employee:
    employee = Employee(
        employee_code=code,
        name=name,
        department="Engineering",
        employee_type=employee_type,
    )
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    return employee


async def make_session(
    db: AsyncSession,
    employee: Employee,
    punch_in: datetime | None = START,
    punch_out: datetime | None = None,
    **fields,
) -> AttendanceSession:
    reference = punch_in or START
    session = AttendanceSession(
        employee_id=employee.id,
        work_date=reference.date(),
        punch_in=punch_in,
        punch_out=punch_out,
        **fields,
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session


@pytest.fixture
async def employee(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session)


@pytest.fixture
def identity(employee: Employee) -> Identity:
    return Identity(user_id=1, employee_id=employee.id, role="employee")


# ── Auth Overrides ──────────────────────────────────────────────────
@pytest.fixture
def as_employee(app: FastAPI, identity: Identity) -> Identity:
    async def _override_get_current_identity() -> Identity:
        return identity

    app.dependency_overrides[get_current_identity] = _override_get_current_identity
    return identity


@pytest.fixture
def as_admin(app: FastAPI) -> Identity:
    admin = Identity(user_id=99, employee_id=None, role="admin")

    async def _override_get_current_identity() -> Identity:
        return admin

    app.dependency_overrides[get_current_identity] = _override_get_current_identity
    return admin
