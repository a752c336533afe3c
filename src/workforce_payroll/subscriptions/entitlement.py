"""Entitlement gate over a company's subscription.

The service is stateless: every call takes the subscription explicitly and
reads live counts through the session it was built with. It is the only
writer of the subscription usage counters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock, start_of_month
from workforce_payroll.config import get_settings
from workforce_payroll.errors import InvalidStateError, LimitExceededError
from workforce_payroll.models import Employee, Payment, Subscription
from workforce_payroll.subscriptions.plans import UNLIMITED

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """Usage counters as of ``last_updated``."""

    employees_count: int
    payments_this_month: int
    last_updated: datetime


class EntitlementService:
    """Feature and limit checks for a subscription."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        usage_stats_ttl: timedelta | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        if usage_stats_ttl is None:
            usage_stats_ttl = timedelta(seconds=get_settings().usage_stats_ttl_seconds)
        self.usage_stats_ttl = usage_stats_ttl

    def has_feature(self, subscription: Subscription, name: str) -> bool:
        """Feature flag lookup; unknown features are unavailable."""
        return subscription.has_feature(name)

    async def count_active_employees(self, company_id: UUID) -> int:
        """Live count of active employees for a company."""
        result = await self.session.execute(
            select(func.count())
            .select_from(Employee)
            .where(Employee.company_id == company_id, Employee.is_active.is_(True))
        )
        return int(result.scalar_one())

    async def count_payments_since(self, company_id: UUID, since: datetime) -> int:
        """Payments created for the company's employees since ``since``."""
        result = await self.session.execute(
            select(func.count())
            .select_from(Payment)
            .join(Employee, Employee.employee_id == Payment.employee_id)
            .where(Employee.company_id == company_id, Payment.created_at >= since)
        )
        return int(result.scalar_one())

    async def can_add_employee(self, subscription: Subscription) -> bool:
        """Check the employee limit against a live active-employee count."""
        if subscription.max_employees == UNLIMITED:
            return True
        current = await self.count_active_employees(subscription.company_id)
        return current < subscription.max_employees

    def usage_is_stale(self, subscription: Subscription) -> bool:
        """Whether the cached counters are older than the configured TTL."""
        if subscription.usage_last_updated is None:
            return True
        return self.clock.now() - subscription.usage_last_updated > self.usage_stats_ttl

    async def can_process_payment(self, subscription: Subscription) -> bool:
        """Check the monthly payment limit against the cached counter.

        Stale counters are refreshed before the comparison.
        """
        if subscription.max_monthly_payments == UNLIMITED:
            return True
        if self.usage_is_stale(subscription):
            await self.update_usage_stats(subscription)
        return subscription.payments_this_month < subscription.max_monthly_payments

    async def update_usage_stats(self, subscription: Subscription) -> UsageSnapshot:
        """Recompute and persist the usage counters (last write wins)."""
        now = self.clock.now()
        employees_count = await self.count_active_employees(subscription.company_id)
        payments_this_month = await self.count_payments_since(
            subscription.company_id, start_of_month(now)
        )

        subscription.employees_count = employees_count
        subscription.payments_this_month = payments_this_month
        subscription.usage_last_updated = now
        await self.session.flush()

        logger.debug(
            "Usage refreshed for company %s: %d employees, %d payments this month",
            subscription.company_id,
            employees_count,
            payments_this_month,
        )
        return UsageSnapshot(
            employees_count=employees_count,
            payments_this_month=payments_this_month,
            last_updated=now,
        )

    def require_valid(self, subscription: Subscription) -> None:
        """Raise unless the subscription currently grants access."""
        if not subscription.is_valid(self.clock.now()):
            raise InvalidStateError(
                "Your subscription has expired. Please renew to continue.",
                code="SUBSCRIPTION_EXPIRED",
                status_code=403,
                details={"status": subscription.status},
            )

    def require_feature(self, subscription: Subscription, name: str) -> None:
        """Raise unless the subscription's plan includes ``name``."""
        if not self.has_feature(subscription, name):
            raise LimitExceededError(
                "This feature requires a higher subscription plan",
                code="FEATURE_NOT_AVAILABLE",
                details={"feature": name, "plan": subscription.plan},
            )

    async def require_employee_capacity(self, subscription: Subscription) -> None:
        """Raise when no more employees may be added."""
        if not await self.can_add_employee(subscription):
            raise LimitExceededError(
                "Employee limit reached for your current plan. "
                "Please upgrade to add more employees.",
                code="EMPLOYEE_LIMIT_REACHED",
                details={"limit": subscription.max_employees, "plan": subscription.plan},
            )

    async def require_payment_capacity(self, subscription: Subscription) -> None:
        """Raise when the monthly payment limit has been reached."""
        if not await self.can_process_payment(subscription):
            raise LimitExceededError(
                "Monthly payment limit reached for your current plan. "
                "Please upgrade to process more payments.",
                code="PAYMENT_LIMIT_REACHED",
                details={
                    "limit": subscription.max_monthly_payments,
                    "plan": subscription.plan,
                },
            )
