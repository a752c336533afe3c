"""Idempotent commit service for payments and their time log claims."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.types import (
    ZERO,
    EffectiveRates,
    PayBreakdown,
    PaymentOutcome,
)
from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.events import (
    EventEmitter,
    EventMetadata,
    PaymentCorrected,
    PaymentCreated,
    get_emitter,
)
from workforce_payroll.models import Payment, PaymentTimeLog, TimeLog
from workforce_payroll.services.state_machine import (
    PaymentStateMachine,
    PaymentStatus,
    TimeLogStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogHours:
    """Plain snapshot of a time log's identity and hours."""

    time_log_id: UUID
    regular_hours: Decimal
    bonus_hours: Decimal

    @classmethod
    def from_log(cls, log: TimeLog) -> LogHours:
        return cls(
            time_log_id=log.time_log_id,
            regular_hours=Decimal(log.regular_hours or ZERO),
            bonus_hours=Decimal(log.bonus_hours or ZERO),
        )


@dataclass(frozen=True)
class PaymentBucket:
    """Selected logs of one employee for one payment period."""

    company_id: UUID
    employee_id: UUID
    period_start: datetime
    period_end: datetime
    logs: tuple[LogHours, ...]
    rates: EffectiveRates
    bonus_rate_multiplier: Decimal

    @property
    def log_ids(self) -> list[UUID]:
        return [log.time_log_id for log in self.logs]

    def breakdown(self) -> PayBreakdown:
        return PayBreakdown.compute(
            regular_hours=sum((log.regular_hours for log in self.logs), ZERO),
            bonus_hours=sum((log.bonus_hours for log in self.logs), ZERO),
            rates=self.rates,
        )


@dataclass(frozen=True)
class CommitResult:
    """What happened to one bucket."""

    outcome: PaymentOutcome
    payment_id: UUID
    breakdown: PayBreakdown
    time_log_count: int
    existing_status: str | None = None


class CommitService:
    """Service for idempotent payment persistence.

    Key invariants:
    1. A time log is claimed by at most one payment (primary key of
       payment_time_log)
    2. One payment per (employee, period_start, period_end) (unique constraint)
    3. Logs flip to paid only after their claims are flushed, and only the
       claimed ids
    4. A pending payment is corrected in place; any other status is left
       untouched
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

    async def complete_interrupted_claims(self, employee_id: UUID) -> int:
        """Flip claimed logs that are still approved to paid.

        Claims are the source of truth; a run that stopped between writing
        claims and flipping statuses is finished here.
        """
        result = await self.session.execute(
            select(TimeLog.time_log_id)
            .join(PaymentTimeLog, PaymentTimeLog.time_log_id == TimeLog.time_log_id)
            .where(
                TimeLog.employee_id == employee_id,
                TimeLog.status == TimeLogStatus.APPROVED.value,
            )
        )
        stranded = list(result.scalars().all())
        if stranded:
            logger.warning(
                "Completing %d interrupted claim(s) for employee %s",
                len(stranded),
                employee_id,
            )
            await self._mark_paid(stranded)
        return len(stranded)

    async def find_existing(
        self,
        employee_id: UUID,
        period_start: datetime,
        period_end: datetime,
        log_ids: Sequence[UUID],
    ) -> Payment | None:
        """Find a payment matching, overlapping, or already claiming any log.

        An exact period match wins over an overlap.
        """
        conditions = [
            and_(Payment.period_start <= period_end, Payment.period_end >= period_start)
        ]
        if log_ids:
            conditions.append(
                Payment.payment_id.in_(
                    select(PaymentTimeLog.payment_id).where(
                        PaymentTimeLog.time_log_id.in_(list(log_ids))
                    )
                )
            )

        result = await self.session.execute(
            select(Payment)
            .where(Payment.employee_id == employee_id, or_(*conditions))
            .order_by(Payment.created_at)
            .execution_options(populate_existing=True)
        )
        candidates = list(result.scalars().all())
        if not candidates:
            return None

        for payment in candidates:
            if payment.period_start == period_start and payment.period_end == period_end:
                return payment
        return candidates[0]

    async def commit_bucket(self, bucket: PaymentBucket) -> CommitResult:
        """Create, correct, or skip the payment for a bucket."""
        existing = await self.find_existing(
            bucket.employee_id, bucket.period_start, bucket.period_end, bucket.log_ids
        )
        if existing is None:
            try:
                return await self._create(bucket)
            except IntegrityError:
                # Another writer got there first; re-read what it committed.
                logger.info(
                    "Duplicate payment insert for employee %s period %s, re-reading",
                    bucket.employee_id,
                    bucket.period_start,
                )
                existing = await self.find_existing(
                    bucket.employee_id,
                    bucket.period_start,
                    bucket.period_end,
                    bucket.log_ids,
                )
                if existing is None:
                    raise

        if PaymentStateMachine.can_correct(existing.status):
            return await self._correct(existing, bucket)

        logger.info(
            "Skipping payment %s for employee %s - status is %s",
            existing.payment_id,
            bucket.employee_id,
            existing.status,
        )
        return CommitResult(
            outcome=PaymentOutcome.SKIPPED,
            payment_id=existing.payment_id,
            breakdown=bucket.breakdown(),
            time_log_count=len(bucket.logs),
            existing_status=existing.status,
        )

    async def _create(self, bucket: PaymentBucket) -> CommitResult:
        breakdown = bucket.breakdown()
        log_ids = bucket.log_ids

        async with self.session.begin_nested():
            payment = Payment(
                employee_id=bucket.employee_id,
                period_start=bucket.period_start,
                period_end=bucket.period_end,
                amount=breakdown.total_pay,
                regular_hours=breakdown.regular_hours,
                bonus_hours=breakdown.bonus_hours,
                hourly_rate=bucket.rates.base,
                bonus_rate_multiplier=bucket.bonus_rate_multiplier,
                time_log_ids=[str(log_id) for log_id in log_ids],
                status=PaymentStatus.PENDING.value,
                created_at=self.clock.now(),
            )
            self.session.add(payment)
            await self.session.flush()
            await self._claim(payment.payment_id, bucket.employee_id, log_ids)

        payment_id = payment.payment_id
        await self._mark_paid(log_ids)

        logger.info(
            "Created pending payment %s for employee %s amount=%s",
            payment_id,
            bucket.employee_id,
            breakdown.total_pay,
        )
        self.emitter.emit(
            PaymentCreated(
                metadata=self._metadata(bucket.company_id),
                payment_id=payment_id,
                employee_id=bucket.employee_id,
                period_start=bucket.period_start,
                period_end=bucket.period_end,
                amount=breakdown.total_pay,
                time_log_count=len(log_ids),
            )
        )
        return CommitResult(
            outcome=PaymentOutcome.CREATED,
            payment_id=payment_id,
            breakdown=breakdown,
            time_log_count=len(log_ids),
        )

    async def _correct(self, payment: Payment, bucket: PaymentBucket) -> CommitResult:
        """Recompute a pending payment over its claimed logs plus new ones."""
        claimed_ids = payment.covered_log_ids
        claimed_set = set(claimed_ids)
        new_logs = [log for log in bucket.logs if log.time_log_id not in claimed_set]
        new_ids = [log.time_log_id for log in new_logs]

        claimed_logs = await self._load_log_hours(claimed_ids)
        all_logs = (*claimed_logs, *new_logs)
        breakdown = PayBreakdown.compute(
            regular_hours=sum((log.regular_hours for log in all_logs), ZERO),
            bonus_hours=sum((log.bonus_hours for log in all_logs), ZERO),
            rates=bucket.rates,
        )

        previous_amount = Decimal(payment.amount)
        if new_ids or breakdown.total_pay != previous_amount:
            async with self.session.begin_nested():
                if new_ids:
                    await self._claim(payment.payment_id, bucket.employee_id, new_ids)
                payment.amount = breakdown.total_pay
                payment.regular_hours = breakdown.regular_hours
                payment.bonus_hours = breakdown.bonus_hours
                payment.hourly_rate = bucket.rates.base
                payment.bonus_rate_multiplier = bucket.bonus_rate_multiplier
                payment.time_log_ids = [str(log_id) for log_id in (*claimed_ids, *new_ids)]
                await self.session.flush()

            await self._mark_paid(new_ids)
            logger.info(
                "Updated pending payment %s for employee %s amount=%s (+%d logs)",
                payment.payment_id,
                bucket.employee_id,
                breakdown.total_pay,
                len(new_ids),
            )
            if breakdown.total_pay != previous_amount:
                self.emitter.emit(
                    PaymentCorrected(
                        metadata=self._metadata(bucket.company_id),
                        payment_id=payment.payment_id,
                        employee_id=bucket.employee_id,
                        previous_amount=previous_amount,
                        amount=breakdown.total_pay,
                        time_log_count=len(all_logs),
                    )
                )

        return CommitResult(
            outcome=PaymentOutcome.UPDATED,
            payment_id=payment.payment_id,
            breakdown=breakdown,
            time_log_count=len(all_logs),
        )

    async def _claim(self, payment_id: UUID, employee_id: UUID, log_ids: Sequence[UUID]) -> None:
        self.session.add_all(
            [
                PaymentTimeLog(
                    time_log_id=log_id,
                    payment_id=payment_id,
                    employee_id=employee_id,
                )
                for log_id in log_ids
            ]
        )
        await self.session.flush()

    async def _mark_paid(self, log_ids: Sequence[UUID]) -> None:
        if not log_ids:
            return
        await self.session.execute(
            update(TimeLog)
            .where(
                TimeLog.time_log_id.in_(list(log_ids)),
                TimeLog.status == TimeLogStatus.APPROVED.value,
            )
            .values(status=TimeLogStatus.PAID.value)
        )
        logger.info("Marked %d time logs as paid", len(log_ids))

    async def _load_log_hours(self, log_ids: Sequence[UUID]) -> list[LogHours]:
        if not log_ids:
            return []
        result = await self.session.execute(
            select(TimeLog.time_log_id, TimeLog.regular_hours, TimeLog.bonus_hours).where(
                TimeLog.time_log_id.in_(list(log_ids))
            )
        )
        return [
            LogHours(
                time_log_id=row.time_log_id,
                regular_hours=Decimal(row.regular_hours or ZERO),
                bonus_hours=Decimal(row.bonus_hours or ZERO),
            )
            for row in result
        ]

    def _metadata(self, company_id: UUID) -> EventMetadata:
        return EventMetadata.create(
            company_id=company_id,
            actor_type="system",
            source_service="payroll",
            timestamp=self.clock.now(),
        )
