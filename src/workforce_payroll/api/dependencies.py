"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.database import init_db
from workforce_payroll.events import EventEmitter, get_emitter


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_clock() -> Clock:
    """Time source for request handling."""
    return SystemClock()


def get_event_emitter() -> EventEmitter:
    """Process-wide event emitter."""
    return get_emitter()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
RequestClock = Annotated[Clock, Depends(get_clock)]
Emitter = Annotated[EventEmitter, Depends(get_event_emitter)]
