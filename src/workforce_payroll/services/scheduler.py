"""Payroll cycle scheduler.

Derives the payroll window from a company's billing cadence and runs the
engine over it, after checking the subscription allows it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.engine import PayrollEngine
from workforce_payroll.calculators.types import PaymentOutcome, PayrollRunResult
from workforce_payroll.clock import Clock, SystemClock, add_months, start_of_month
from workforce_payroll.errors import (
    InvalidStateError,
    NotFoundError,
    PayrollError,
    StoreUnavailableError,
)
from workforce_payroll.events import EventEmitter, get_emitter
from workforce_payroll.models import Company, Subscription
from workforce_payroll.subscriptions.entitlement import EntitlementService
from workforce_payroll.subscriptions.lifecycle import SubscriptionService

logger = logging.getLogger(__name__)

WEEKLY_WINDOW = timedelta(days=7)


def cycle_window(payment_cycle: str, now: datetime) -> tuple[datetime, datetime]:
    """Payroll window for a cadence at ``now``.

    - daily: today 00:00:00 to 23:59:59.999999
    - weekly: the rolling 7 days ending now
    - monthly: the whole previous calendar month
    """
    if payment_cycle == "daily":
        return (
            datetime.combine(now.date(), time.min),
            datetime.combine(now.date(), time.max),
        )
    if payment_cycle == "weekly":
        return now - WEEKLY_WINDOW, now
    if payment_cycle == "monthly":
        this_month = start_of_month(now)
        previous_month = add_months(this_month, -1)
        return previous_month, this_month - timedelta(microseconds=1)
    raise InvalidStateError(
        f"Invalid payment cycle '{payment_cycle}'", code="INVALID_PAYMENT_CYCLE"
    )


@dataclass
class CycleBatchResult:
    """Outcome of running every due company."""

    results: dict[UUID, PayrollRunResult] = field(default_factory=dict)
    failures: dict[UUID, str] = field(default_factory=dict)  # company_id -> error code


class PayrollCycleScheduler:
    """Runs cadence-based payroll for companies."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.emitter = emitter or get_emitter()
        self.engine = PayrollEngine(session, self.clock, self.emitter)
        self.entitlements = EntitlementService(session, self.clock)
        self.subscriptions = SubscriptionService(session, self.clock, self.emitter)

    async def run_cycle(self, company_id: UUID) -> PayrollRunResult:
        """Run payroll for the company's current cadence window.

        Raises:
            NotFoundError: Unknown company
            InvalidStateError: Unknown cadence, missing or expired subscription
            LimitExceededError: Monthly payment limit reached
        """
        company = await self.session.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")

        start, end = cycle_window(company.payment_cycle, self.clock.now())

        subscription = await self._require_subscription(company_id)
        self.entitlements.require_valid(subscription)
        await self.entitlements.require_payment_capacity(subscription)

        result = await self.engine.compute_payroll(
            company_id, start, end, include_inactive=True
        )
        if result.count(PaymentOutcome.CREATED):
            await self.entitlements.update_usage_stats(subscription)
        return result

    async def run_due_cycles(self) -> CycleBatchResult:
        """Run the cadence window for every active company.

        Companies failing with a caller-facing error are logged and skipped;
        store unavailability aborts the batch.
        """
        result = await self.session.execute(
            select(Company.company_id)
            .where(Company.is_active.is_(True))
            .order_by(Company.created_at)
        )
        company_ids = list(result.scalars().all())

        batch = CycleBatchResult()
        for company_id in company_ids:
            try:
                batch.results[company_id] = await self.run_cycle(company_id)
            except StoreUnavailableError:
                raise
            except PayrollError as e:
                logger.warning(
                    "Skipping payroll cycle for company %s: %s (%s)",
                    company_id,
                    e.message,
                    e.code,
                )
                batch.failures[company_id] = e.code

        logger.info(
            "Payroll cycles complete: %d ran, %d skipped",
            len(batch.results),
            len(batch.failures),
        )
        return batch

    async def _require_subscription(self, company_id: UUID) -> Subscription:
        subscription = await self.subscriptions.find_for_company(company_id)
        if subscription is None:
            raise InvalidStateError(
                "No active subscription found. Please subscribe to continue.",
                code="NO_SUBSCRIPTION",
                status_code=403,
            )
        return subscription
