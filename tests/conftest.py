"""Pytest fixtures for workforce payroll tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workforce_payroll.clock import FixedClock
from workforce_payroll.events import DomainEvent, EventEmitter
from workforce_payroll.models import Base, Company, Employee, JobRole, TimeLog
from workforce_payroll.services.company_service import CompanyService

# Mid-month, mid-day so daily/weekly/monthly windows are all unambiguous
NOW = datetime(2026, 1, 15, 12, 0, 0)

LogFactory = Callable[..., Awaitable[TimeLog]]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with working savepoints."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy own BEGIN so SAVEPOINT nests inside it
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def emitter() -> EventEmitter:
    """Isolated emitter so tests never share handlers."""
    return EventEmitter()


@pytest.fixture
def events(emitter: EventEmitter) -> list[DomainEvent]:
    """Every event emitted during the test, in order."""
    recorded: list[DomainEvent] = []
    emitter.on_all(recorded.append)
    return recorded


@pytest.fixture
def company_service(
    session: AsyncSession, clock: FixedClock, emitter: EventEmitter
) -> CompanyService:
    return CompanyService(session, clock, emitter)


@pytest_asyncio.fixture
async def company(session: AsyncSession, company_service: CompanyService) -> Company:
    """Daily-cadence company on the free trial plan."""
    company = await company_service.create_company(
        "Abyssinia Coffee",
        payment_cycle="daily",
        bonus_rate_multiplier=Decimal("1.5"),
        max_daily_hours=Decimal("8"),
    )
    await session.commit()
    return company


@pytest_asyncio.fixture
async def barista_role(
    session: AsyncSession, company_service: CompanyService, company: Company
) -> JobRole:
    """Role with base 25, overtime 37.5 and a flat role bonus of 100."""
    role = await company_service.add_job_role(
        company.company_id,
        "Barista",
        base_rate=Decimal("25"),
        overtime_rate=Decimal("37.5"),
        role_bonus=Decimal("100"),
    )
    await session.commit()
    return role


@pytest_asyncio.fixture
async def employee(
    session: AsyncSession,
    company_service: CompanyService,
    company: Company,
    barista_role: JobRole,
) -> Employee:
    employee = await company_service.add_employee(
        company.company_id,
        "Selam Tesfaye",
        hourly_rate=Decimal("20"),
        job_role_id=barista_role.job_role_id,
    )
    await session.commit()
    return employee


@pytest_asyncio.fixture
async def hourly_employee(
    session: AsyncSession, company_service: CompanyService, company: Company
) -> Employee:
    """Employee without a job role, paid the plain hourly rate."""
    employee = await company_service.add_employee(
        company.company_id, "Dawit Bekele", hourly_rate=Decimal("20")
    )
    await session.commit()
    return employee


@pytest.fixture
def make_log(session: AsyncSession) -> LogFactory:
    """Create a closed time log directly, bypassing the time log service."""

    async def _make_log(
        employee: Employee,
        clock_in: datetime,
        hours: float,
        status: str = "approved",
        daily_cap: Decimal = Decimal("8"),
    ) -> TimeLog:
        log = TimeLog(employee_id=employee.employee_id, clock_in=clock_in, status=status)
        log.record_clock_out(clock_in + timedelta(hours=hours), daily_cap)
        if status != "pending":
            log.approved_at = clock_in + timedelta(hours=hours)
        session.add(log)
        await session.flush()
        return log

    return _make_log
