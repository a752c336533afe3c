"""Integration test fixtures: the HTTP app wired to the test database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce_payroll.api.app import create_app
from workforce_payroll.api.dependencies import get_clock, get_db_session, get_event_emitter
from workforce_payroll.clock import FixedClock
from workforce_payroll.events import EventEmitter


@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    emitter: EventEmitter,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own test-database session."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_emitter] = lambda: emitter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
