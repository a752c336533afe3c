"""Time log recording and approval."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.errors import InvalidStateError, NotFoundError
from workforce_payroll.models import Company, Employee, TimeLog
from workforce_payroll.services.state_machine import TimeLogStateMachine, TimeLogStatus

logger = logging.getLogger(__name__)


class TimeLogService:
    """Clock-in, clock-out and approval of time logs."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    async def get(self, time_log_id: UUID) -> TimeLog:
        log = await self.session.get(TimeLog, time_log_id)
        if log is None:
            raise NotFoundError("Time log not found", code="TIME_LOG_NOT_FOUND")
        return log

    async def get_open_log(self, employee_id: UUID) -> TimeLog | None:
        """The employee's log without a clock-out, if any."""
        result = await self.session.execute(
            select(TimeLog)
            .where(TimeLog.employee_id == employee_id, TimeLog.clock_out.is_(None))
            .order_by(TimeLog.clock_in.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def clock_in(self, employee_id: UUID, at: datetime | None = None) -> TimeLog:
        """Open a new time log for an active employee."""
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        if not employee.is_active:
            raise InvalidStateError("Employee is not active", code="EMPLOYEE_INACTIVE")
        if await self.get_open_log(employee_id) is not None:
            raise InvalidStateError("Already clocked in", code="ALREADY_CLOCKED_IN")

        log = TimeLog(
            employee_id=employee_id,
            clock_in=at or self.clock.now(),
            status=TimeLogStatus.PENDING.value,
        )
        self.session.add(log)
        await self.session.flush()
        logger.debug("Employee %s clocked in (log %s)", employee_id, log.time_log_id)
        return log

    async def clock_out(self, time_log_id: UUID, at: datetime | None = None) -> TimeLog:
        """Close a time log and split its hours at the company's daily cap."""
        log = await self.get(time_log_id)
        if log.clock_out is not None:
            raise InvalidStateError("Already clocked out", code="ALREADY_CLOCKED_OUT")

        employee = await self.session.get(Employee, log.employee_id)
        if employee is None:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        company = await self.session.get(Company, employee.company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")

        try:
            log.record_clock_out(at or self.clock.now(), company.max_daily_hours)
        except ValueError as e:
            raise InvalidStateError(str(e), code="INVALID_CLOCK_OUT") from e

        await self.session.flush()
        logger.debug(
            "Time log %s closed: %s regular, %s bonus hours",
            log.time_log_id,
            log.regular_hours,
            log.bonus_hours,
        )
        return log

    async def approve(self, time_log_id: UUID) -> TimeLog:
        """Approve a closed, pending time log."""
        log = await self.get(time_log_id)
        if log.clock_out is None:
            raise InvalidStateError(
                "Cannot approve a time log without a clock-out", code="TIME_LOG_OPEN"
            )
        TimeLogStateMachine.validate_transition(log.status, TimeLogStatus.APPROVED.value)

        log.status = TimeLogStatus.APPROVED.value
        log.approved_at = self.clock.now()
        await self.session.flush()
        return log

    async def list_for_employee(
        self, employee_id: UUID, status: str | None = None
    ) -> list[TimeLog]:
        query = select(TimeLog).where(TimeLog.employee_id == employee_id)
        if status:
            query = query.where(TimeLog.status == status)
        result = await self.session.execute(query.order_by(TimeLog.clock_in))
        return list(result.scalars().all())
