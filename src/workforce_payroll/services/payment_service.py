"""Payment status workflow and payroll summaries.

The payment processor itself is opaque; this service only records the
status transitions it reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.types import ZERO, to_money
from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.errors import InvalidTransitionError, NotFoundError
from workforce_payroll.events import (
    EventEmitter,
    EventMetadata,
    PaymentStatusChanged,
    get_emitter,
)
from workforce_payroll.models import Company, Employee, Payment
from workforce_payroll.services.state_machine import PaymentStateMachine, PaymentStatus

logger = logging.getLogger(__name__)


@dataclass
class PayrollSummary:
    """Payment counts and totals for a company and window."""

    company_id: UUID
    company_name: str
    period_start: datetime
    period_end: datetime
    total_employees: int = 0
    total_payments: int = 0
    total_amount: Decimal = ZERO
    counts: dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in PaymentStatus}
    )

    @property
    def pending_payments(self) -> int:
        return self.counts[PaymentStatus.PENDING.value]

    @property
    def approved_payments(self) -> int:
        return self.counts[PaymentStatus.APPROVED.value]

    @property
    def processing_payments(self) -> int:
        return self.counts[PaymentStatus.PROCESSING.value]

    @property
    def completed_payments(self) -> int:
        return self.counts[PaymentStatus.COMPLETED.value]

    @property
    def failed_payments(self) -> int:
        return self.counts[PaymentStatus.FAILED.value]


class PaymentService:
    """Service for payment status transitions."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.emitter = emitter or get_emitter()

    async def get(self, payment_id: UUID) -> Payment:
        payment = await self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found", code="PAYMENT_NOT_FOUND")
        return payment

    async def approve(self, payment_id: UUID) -> Payment:
        """pending → approved."""
        return await self._transition(
            payment_id, PaymentStatus.APPROVED, approved_at=self.clock.now()
        )

    async def mark_processing(self, payment_id: UUID) -> Payment:
        """approved → processing (handed to the processor)."""
        return await self._transition(payment_id, PaymentStatus.PROCESSING)

    async def mark_completed(self, payment_id: UUID) -> Payment:
        """processing → completed."""
        return await self._transition(
            payment_id, PaymentStatus.COMPLETED, processed_at=self.clock.now()
        )

    async def mark_failed(self, payment_id: UUID, reason: str) -> Payment:
        """approved|processing → failed."""
        return await self._transition(
            payment_id, PaymentStatus.FAILED, failure_reason=reason, reason=reason
        )

    async def retry(self, payment_id: UUID) -> Payment:
        """failed → approved, counting the retry."""
        payment = await self.get(payment_id)
        if not PaymentStateMachine.is_retry(payment.status, PaymentStatus.APPROVED.value):
            raise InvalidTransitionError(
                payment.status,
                PaymentStatus.APPROVED.value,
                reason="only failed payments can be retried",
            )
        return await self._transition(
            payment_id,
            PaymentStatus.APPROVED,
            retry_count=(payment.retry_count or 0) + 1,
            failure_reason=None,
            approved_at=self.clock.now(),
        )

    async def approve_pending_for_period(
        self,
        company_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Payment]:
        """Approve every pending payment of the company's active employees."""
        query = self._company_payments(company_id, active_only=True).where(
            Payment.status == PaymentStatus.PENDING.value
        )
        if start is not None:
            query = query.where(Payment.period_start >= start)
        if end is not None:
            query = query.where(Payment.period_end <= end)
        result = await self.session.execute(query.order_by(Payment.created_at))
        payments = list(result.scalars().all())

        for payment in payments:
            await self._apply(payment, PaymentStatus.APPROVED, approved_at=self.clock.now())
        logger.info("Approved %d pending payment(s) for company %s", len(payments), company_id)
        return payments

    async def get_pending_payments(self, company_id: UUID) -> list[Payment]:
        return await self._payments_with_status(company_id, PaymentStatus.PENDING)

    async def get_approved_payments(self, company_id: UUID) -> list[Payment]:
        return await self._payments_with_status(company_id, PaymentStatus.APPROVED)

    async def list_payments(
        self,
        company_id: UUID,
        status: str | None = None,
        employee_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payment], int]:
        query = self._company_payments(company_id)
        if status:
            query = query.where(Payment.status == status)
        if employee_id:
            query = query.where(Payment.employee_id == employee_id)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Payment.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def get_payroll_summary(
        self, company_id: UUID, start: datetime, end: datetime
    ) -> PayrollSummary:
        """Count and sum the company's payments whose period lies in [start, end]."""
        company = await self.session.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")

        total_employees = await self.session.scalar(
            select(func.count())
            .select_from(Employee)
            .where(Employee.company_id == company_id, Employee.is_active.is_(True))
        )

        result = await self.session.execute(
            select(Payment.status, func.count(), func.coalesce(func.sum(Payment.amount), 0))
            .join(Employee, Employee.employee_id == Payment.employee_id)
            .where(
                Employee.company_id == company_id,
                Payment.period_start >= start,
                Payment.period_end <= end,
            )
            .group_by(Payment.status)
        )

        summary = PayrollSummary(
            company_id=company_id,
            company_name=company.name,
            period_start=start,
            period_end=end,
            total_employees=int(total_employees or 0),
        )
        total_amount = ZERO
        for status, count, amount in result:
            summary.counts[status] = int(count)
            summary.total_payments += int(count)
            total_amount += Decimal(str(amount))
        summary.total_amount = to_money(total_amount)
        return summary

    def _company_payments(self, company_id: UUID, active_only: bool = False):
        query = (
            select(Payment)
            .join(Employee, Employee.employee_id == Payment.employee_id)
            .where(Employee.company_id == company_id)
        )
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        return query

    async def _payments_with_status(
        self, company_id: UUID, status: PaymentStatus
    ) -> list[Payment]:
        result = await self.session.execute(
            self._company_payments(company_id, active_only=True)
            .where(Payment.status == status.value)
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())

    async def _transition(
        self, payment_id: UUID, to_status: PaymentStatus, **changes
    ) -> Payment:
        payment = await self.get(payment_id)
        return await self._apply(payment, to_status, **changes)

    async def _apply(
        self,
        payment: Payment,
        to_status: PaymentStatus,
        reason: str | None = None,
        **changes,
    ) -> Payment:
        from_status = payment.status
        PaymentStateMachine.validate_transition(from_status, to_status.value)

        payment.status = to_status.value
        for name, value in changes.items():
            setattr(payment, name, value)
        await self.session.flush()

        employee = await self.session.get(Employee, payment.employee_id)
        logger.info("Payment %s: %s -> %s", payment.payment_id, from_status, to_status.value)
        self.emitter.emit(
            PaymentStatusChanged(
                metadata=EventMetadata.create(
                    company_id=employee.company_id if employee else payment.employee_id,
                    source_service="payments",
                    timestamp=self.clock.now(),
                ),
                payment_id=payment.payment_id,
                employee_id=payment.employee_id,
                from_status=from_status,
                to_status=to_status.value,
                reason=reason,
            )
        )
        return payment
