"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.rate_resolver import RateResolver
from workforce_payroll.calculators.types import (
    ZERO,
    EmployeePayrollResult,
    PayBreakdown,
    PaymentOutcome,
    PayrollRunResult,
)
from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.database import is_store_unavailable
from workforce_payroll.errors import (
    InvalidStateError,
    NotFoundError,
    StoreUnavailableError,
)
from workforce_payroll.events import (
    EventEmitter,
    EventMetadata,
    PayrollRunCompleted,
    get_emitter,
)
from workforce_payroll.models import Company, Employee, PaymentTimeLog, TimeLog
from workforce_payroll.services.commit_service import CommitService, LogHours, PaymentBucket
from workforce_payroll.services.state_machine import TimeLogStatus

logger = logging.getLogger(__name__)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last instant of a calendar day."""
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def group_logs_by_day(logs: Sequence[TimeLog]) -> dict[date, list[TimeLog]]:
    """Bucket time logs by the calendar day of their clock-in, in day order."""
    buckets: dict[date, list[TimeLog]] = defaultdict(list)
    for log in sorted(logs, key=lambda entry: entry.clock_in):
        buckets[log.clock_in.date()].append(log)
    return dict(sorted(buckets.items()))


class PayrollEngine:
    """Main payroll calculation engine.

    Calculation pipeline (per employee):
    1) Finish interrupted claims (claimed logs still approved → paid)
    2) Select approved, clocked-out, unclaimed logs in the window
    3) Resolve effective rates
    4) Bucket logs by day of clock-in and sum regular/bonus hours
    5) Skip buckets without hours
    6) Commit each bucket idempotently (create / correct pending / skip)

    Each employee runs in its own savepoint so one failure does not abort
    the run. Loss of the store aborts with StoreUnavailableError.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.emitter = emitter or get_emitter()
        self.rate_resolver = RateResolver(session)
        self.commit_service = CommitService(session, self.clock, self.emitter)

    async def compute_payroll(
        self,
        company_id: UUID,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> PayrollRunResult:
        """Compute and persist payments for a company over [start, end].

        Raises:
            NotFoundError: Unknown company
            InvalidStateError: start is after end
            StoreUnavailableError: The store cannot be reached
        """
        if start > end:
            raise InvalidStateError(
                "Period start must not be after period end", code="INVALID_PERIOD"
            )

        try:
            return await self._compute(company_id, start, end, include_inactive)
        except SQLAlchemyError as exc:
            if is_store_unavailable(exc):
                raise StoreUnavailableError(str(exc)) from exc
            raise

    async def _compute(
        self,
        company_id: UUID,
        start: datetime,
        end: datetime,
        include_inactive: bool,
    ) -> PayrollRunResult:
        company = await self.session.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")

        company_name = company.name
        multiplier = Decimal(company.bonus_rate_multiplier or 1)

        query = select(Employee).where(Employee.company_id == company_id)
        if not include_inactive:
            query = query.where(Employee.is_active.is_(True))
        result = await self.session.execute(query.order_by(Employee.name))
        employees = list(result.scalars().all())

        run = PayrollRunResult(
            company_id=company_id,
            company_name=company_name,
            period_start=start,
            period_end=end,
            total_employees=len(employees),
        )

        for employee in employees:
            employee_id = employee.employee_id
            employee_name = employee.name
            try:
                async with self.session.begin_nested():
                    rows = await self._process_employee(
                        company_id, employee, multiplier, start, end
                    )
            except StoreUnavailableError:
                raise
            except Exception as e:
                if isinstance(e, SQLAlchemyError) and is_store_unavailable(e):
                    raise StoreUnavailableError(str(e)) from e
                logger.exception(
                    "Payroll failed for employee %s of company %s", employee_id, company_id
                )
                run.results.append(
                    EmployeePayrollResult(
                        employee_id=employee_id,
                        employee_name=employee_name,
                        period_start=start,
                        period_end=end,
                        outcome=PaymentOutcome.SKIPPED,
                        error=str(e),
                    )
                )
                continue

            run.results.extend(rows)

        logger.info(
            "Payroll for company %s [%s, %s]: %d created, %d updated, %d skipped, "
            "%d failed, total=%s",
            company_id,
            start,
            end,
            run.count(PaymentOutcome.CREATED),
            run.count(PaymentOutcome.UPDATED),
            run.count(PaymentOutcome.SKIPPED),
            run.error_count,
            run.total_amount,
        )
        self.emitter.emit(
            PayrollRunCompleted(
                metadata=EventMetadata.create(
                    company_id=company_id,
                    actor_type="system",
                    source_service="payroll",
                    timestamp=self.clock.now(),
                ),
                period_start=start,
                period_end=end,
                total_employees=run.total_employees,
                employees_with_payments=run.employees_with_payments,
                created_count=run.count(PaymentOutcome.CREATED),
                updated_count=run.count(PaymentOutcome.UPDATED),
                skipped_count=run.count(PaymentOutcome.SKIPPED),
                total_amount=run.total_amount,
            )
        )
        return run

    async def _process_employee(
        self,
        company_id: UUID,
        employee: Employee,
        multiplier: Decimal,
        start: datetime,
        end: datetime,
    ) -> list[EmployeePayrollResult]:
        employee_id = employee.employee_id
        employee_name = employee.name

        await self.commit_service.complete_interrupted_claims(employee_id)

        logs = await self.select_unpaid_logs(employee_id, start, end)
        if not logs:
            return []

        rates = await self.rate_resolver.resolve_for_employee(employee)
        rows: list[EmployeePayrollResult] = []

        for day, day_logs in group_logs_by_day(logs).items():
            bucket_logs = tuple(LogHours.from_log(log) for log in day_logs)
            period_start, period_end = day_bounds(day)
            bucket = PaymentBucket(
                company_id=company_id,
                employee_id=employee_id,
                period_start=period_start,
                period_end=period_end,
                logs=bucket_logs,
                rates=rates,
                bonus_rate_multiplier=multiplier,
            )
            if not bucket.breakdown().has_hours:
                continue

            committed = await self.commit_service.commit_bucket(bucket)
            breakdown = committed.breakdown
            rows.append(
                EmployeePayrollResult(
                    employee_id=employee_id,
                    employee_name=employee_name,
                    period_start=period_start,
                    period_end=period_end,
                    outcome=committed.outcome,
                    payment_id=committed.payment_id,
                    regular_hours=breakdown.regular_hours,
                    bonus_hours=breakdown.bonus_hours,
                    regular_pay=breakdown.regular_pay,
                    bonus_pay=breakdown.bonus_pay,
                    total_pay=breakdown.total_pay,
                    time_log_count=committed.time_log_count,
                    existing_status=committed.existing_status,
                )
            )

        return rows

    async def select_unpaid_logs(
        self,
        employee_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[TimeLog]:
        """Approved, clocked-out, unclaimed logs with clock-in in [start, end]."""
        claimed = exists().where(PaymentTimeLog.time_log_id == TimeLog.time_log_id)
        result = await self.session.execute(
            select(TimeLog)
            .where(
                TimeLog.employee_id == employee_id,
                TimeLog.status == TimeLogStatus.APPROVED.value,
                TimeLog.clock_out.is_not(None),
                TimeLog.clock_in >= start,
                TimeLog.clock_in <= end,
                ~claimed,
            )
            .order_by(TimeLog.clock_in)
        )
        return list(result.scalars().all())

    async def calculate_employee_payment(
        self,
        employee_id: UUID,
        time_log_ids: Sequence[UUID],
    ) -> PayBreakdown | None:
        """Preview pay for a given set of the employee's approved logs.

        Returns None when none of the ids are approved, clocked-out logs of
        the employee. Nothing is written.
        """
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        if not time_log_ids:
            return None

        result = await self.session.execute(
            select(TimeLog).where(
                TimeLog.time_log_id.in_(list(time_log_ids)),
                TimeLog.employee_id == employee_id,
                TimeLog.status == TimeLogStatus.APPROVED.value,
                TimeLog.clock_out.is_not(None),
            )
        )
        logs = list(result.scalars().all())
        if not logs:
            return None

        rates = await self.rate_resolver.resolve_for_employee(employee)
        return PayBreakdown.compute(
            regular_hours=sum((Decimal(log.regular_hours or ZERO) for log in logs), ZERO),
            bonus_hours=sum((Decimal(log.bonus_hours or ZERO) for log in logs), ZERO),
            rates=rates,
        )
