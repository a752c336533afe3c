"""Subscription lifecycle service.

Applies the transitions held by ``SubscriptionStateMachine`` together with
their side effects (limits, pricing, periods, suspension bookkeeping).
Employer-facing operations address a subscription by company id; admin
operations address it by subscription id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock, add_months
from workforce_payroll.errors import (
    InvalidPlanError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
)
from workforce_payroll.events import (
    DomainEvent,
    EventEmitter,
    EventMetadata,
    SubscriptionCancelled,
    SubscriptionExpired,
    SubscriptionPlanChanged,
    SubscriptionReactivated,
    SubscriptionSuspended,
    SubscriptionUnsuspended,
    get_emitter,
)
from workforce_payroll.models import Subscription
from workforce_payroll.subscriptions.entitlement import EntitlementService
from workforce_payroll.subscriptions.plans import (
    BILLING_CYCLES,
    UNLIMITED,
    PlanConfig,
    calculate_price,
    can_downgrade,
    can_upgrade,
    get_plan,
)
from workforce_payroll.subscriptions.state_machine import (
    SubscriptionStateMachine,
    SubscriptionStatus,
    SuspensionSource,
)

logger = logging.getLogger(__name__)

DEFAULT_PLAN = "free"
ADMIN_SUSPENSION_REASON = "Suspended by admin"
COMPANY_SUSPENSION_REASON = "Company suspended by admin"

PlanId = Literal["free", "starter", "professional", "enterprise"]
BillingCycle = Literal["monthly", "quarterly", "yearly"]
StatusValue = Literal["trial", "active", "suspended", "cancelled", "expired"]


# ============================================================================
# Admin update (allow-listed)
# ============================================================================


class LimitsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_employees: int | None = Field(default=None, ge=-1)
    max_monthly_payments: int | None = Field(default=None, ge=-1)
    features: dict[str, bool] | None = None


class PricingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    billing_cycle: BillingCycle | None = None


class PeriodUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> PeriodUpdate:
        if self.end < self.start:
            raise ValueError("current_period.end must not precede current_period.start")
        return self


class SubscriptionAdminUpdate(BaseModel):
    """Fields a super admin may overwrite. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    plan: PlanId | None = None
    status: StatusValue | None = None
    limits: LimitsUpdate | None = None
    pricing: PricingUpdate | None = None
    notes: str | None = None
    auto_renew: bool | None = None
    current_period: PeriodUpdate | None = None
    trial_ends_at: datetime | None = None


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class PlanChangeResult:
    """Outcome of a plan change request."""

    subscription: Subscription
    plan: PlanConfig
    direction: str  # 'upgrade', 'downgrade', 'change', 'unchanged'

    @property
    def changed(self) -> bool:
        return self.direction != "unchanged"


class SubscriptionService:
    """Service for subscription lifecycle operations."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.emitter = emitter or get_emitter()
        self.entitlements = EntitlementService(session, self.clock)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get(self, subscription_id: UUID) -> Subscription:
        subscription = await self.session.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
        return subscription

    async def find_for_company(self, company_id: UUID) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription).where(Subscription.company_id == company_id)
        )
        return result.scalar_one_or_none()

    async def get_for_company(self, company_id: UUID) -> Subscription:
        subscription = await self.find_for_company(company_id)
        if subscription is None:
            raise NotFoundError("No subscription found", code="SUBSCRIPTION_NOT_FOUND")
        return subscription

    async def list_subscriptions(
        self,
        status: str | None = None,
        plan: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Subscription], int]:
        """Admin listing with optional filters, newest first."""
        query = select(Subscription)
        if status:
            query = query.where(Subscription.status == status)
        if plan:
            query = query.where(Subscription.plan == plan)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Subscription.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, company_id: UUID, plan_id: str = DEFAULT_PLAN) -> Subscription:
        """Create the subscription for a newly onboarded company."""
        plan = get_plan(plan_id)
        if plan is None:
            raise InvalidPlanError("Invalid plan", code="INVALID_PLAN")

        now = self.clock.now()
        subscription = Subscription(
            company_id=company_id,
            plan=plan.plan_id,
            status=(SubscriptionStatus.TRIAL if plan.has_trial else SubscriptionStatus.ACTIVE).value,
            max_employees=plan.max_employees,
            max_monthly_payments=plan.max_monthly_payments,
            features=plan.feature_dict(),
            price_amount=Decimal("0") if plan.is_custom_priced else Decimal(plan.price),
            currency=plan.currency,
            billing_cycle=plan.billing_cycle,
            current_period_start=now,
            current_period_end=add_months(now, 1),
            trial_ends_at=now + timedelta(days=plan.trial_days) if plan.has_trial else None,
            auto_renew=True,
        )
        self.session.add(subscription)
        await self.session.flush()

        logger.info(
            "Created %s subscription %s (%s) for company %s",
            plan.plan_id,
            subscription.subscription_id,
            subscription.status,
            company_id,
        )
        return subscription

    # ------------------------------------------------------------------
    # Plan change
    # ------------------------------------------------------------------

    async def change_plan(
        self,
        company_id: UUID,
        plan_id: str,
        billing_cycle: str | None = None,
    ) -> PlanChangeResult:
        """Move a trial or active subscription to another plan or cycle.

        Raises:
            InvalidPlanError: Unknown plan or billing cycle
            InvalidStateError: Subscription is not trial/active
            LimitExceededError: Downgrade target cannot hold the current employees
        """
        subscription = await self.get_for_company(company_id)

        new_plan = get_plan(plan_id)
        if new_plan is None:
            raise InvalidPlanError("Invalid plan", code="INVALID_PLAN")
        if billing_cycle is not None and billing_cycle not in BILLING_CYCLES:
            raise InvalidPlanError(
                f"Invalid billing cycle '{billing_cycle}'", code="INVALID_BILLING_CYCLE"
            )
        if not SubscriptionStateMachine.can_change_plan(subscription.status):
            raise InvalidStateError(
                f"Cannot change plan of a {subscription.status} subscription"
            )

        current_plan = subscription.plan
        is_upgrade = can_upgrade(current_plan, plan_id)
        is_downgrade = can_downgrade(current_plan, plan_id)
        if not is_upgrade and not is_downgrade and current_plan != plan_id:
            raise InvalidPlanError("Invalid plan change", code="INVALID_PLAN_CHANGE")

        cycle = billing_cycle or subscription.billing_cycle
        if current_plan == plan_id and cycle == subscription.billing_cycle:
            return PlanChangeResult(subscription, new_plan, "unchanged")

        if is_downgrade and new_plan.max_employees != UNLIMITED:
            live_count = await self.entitlements.count_active_employees(company_id)
            employees = max(subscription.employees_count or 0, live_count)
            if employees > new_plan.max_employees:
                raise LimitExceededError(
                    f"Cannot downgrade: You currently have {employees} employees, "
                    f"but the {new_plan.name} plan allows only {new_plan.max_employees}",
                    code="EMPLOYEE_COUNT_EXCEEDS_LIMIT",
                    status_code=400,
                    details={"employees_count": employees, "limit": new_plan.max_employees},
                )

        subscription.plan = new_plan.plan_id
        subscription.max_employees = new_plan.max_employees
        subscription.max_monthly_payments = new_plan.max_monthly_payments
        subscription.features = new_plan.feature_dict()
        subscription.price_amount = calculate_price(plan_id, cycle) or Decimal("0")
        subscription.currency = new_plan.currency
        subscription.billing_cycle = cycle

        if subscription.status == SubscriptionStatus.TRIAL and plan_id != DEFAULT_PLAN:
            SubscriptionStateMachine.validate_transition(
                subscription.status, SubscriptionStatus.ACTIVE.value
            )
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.trial_ends_at = None

        await self.session.flush()

        direction = "upgrade" if is_upgrade else "downgrade" if is_downgrade else "change"
        logger.info(
            "Subscription %s %s: %s -> %s (%s)",
            subscription.subscription_id,
            direction,
            current_plan,
            plan_id,
            cycle,
        )
        self._emit(
            SubscriptionPlanChanged(
                metadata=self._metadata(company_id, actor_type="user"),
                subscription_id=subscription.subscription_id,
                from_plan=current_plan,
                to_plan=plan_id,
                billing_cycle=cycle,
                price_amount=subscription.price_amount,
                direction=direction,
            )
        )
        return PlanChangeResult(subscription, new_plan, direction)

    # ------------------------------------------------------------------
    # Cancel / reactivate
    # ------------------------------------------------------------------

    async def cancel(self, company_id: UUID) -> Subscription:
        """Cancel; access continues until the current period ends."""
        subscription = await self.get_for_company(company_id)
        if not SubscriptionStateMachine.can_cancel(subscription.status):
            raise InvalidStateError(
                f"Cannot cancel a {subscription.status} subscription"
            )
        SubscriptionStateMachine.validate_transition(
            subscription.status, SubscriptionStatus.CANCELLED.value
        )

        now = self.clock.now()
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = now
        subscription.auto_renew = False
        await self.session.flush()

        logger.info("Subscription %s cancelled", subscription.subscription_id)
        self._emit(
            SubscriptionCancelled(
                metadata=self._metadata(company_id, actor_type="user"),
                subscription_id=subscription.subscription_id,
                cancelled_at=now,
                access_until=subscription.current_period_end,
            )
        )
        return subscription

    async def reactivate(self, company_id: UUID) -> Subscription:
        """Reactivate a cancelled or expired subscription with a fresh period."""
        subscription = await self.get_for_company(company_id)
        if not SubscriptionStateMachine.can_reactivate(subscription.status):
            if subscription.status == SubscriptionStatus.SUSPENDED:
                raise InvalidStateError(
                    "Subscription is suspended and must be restored by an admin"
                )
            raise InvalidStateError("Subscription is already active")

        from_status = subscription.status
        SubscriptionStateMachine.validate_transition(from_status, SubscriptionStatus.ACTIVE.value)

        now = self.clock.now()
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.cancelled_at = None
        subscription.auto_renew = True
        subscription.current_period_start = now
        subscription.current_period_end = add_months(now, 1)
        await self.session.flush()

        logger.info(
            "Subscription %s reactivated from %s", subscription.subscription_id, from_status
        )
        self._emit(
            SubscriptionReactivated(
                metadata=self._metadata(company_id, actor_type="user"),
                subscription_id=subscription.subscription_id,
                from_status=from_status,
                period_end=subscription.current_period_end,
            )
        )
        return subscription

    # ------------------------------------------------------------------
    # Suspension
    # ------------------------------------------------------------------

    async def suspend(self, subscription_id: UUID, reason: str | None = None) -> Subscription:
        """Admin suspension."""
        subscription = await self.get(subscription_id)
        return await self._suspend(subscription, reason, SuspensionSource.ADMIN)

    async def unsuspend(self, subscription_id: UUID) -> Subscription:
        """Lift a suspension regardless of who applied it."""
        subscription = await self.get(subscription_id)
        if subscription.status != SubscriptionStatus.SUSPENDED:
            raise InvalidStateError("Subscription is not suspended")
        return await self._unsuspend(subscription)

    async def suspend_for_company(
        self, company_id: UUID, reason: str | None = None
    ) -> Subscription | None:
        """Cascade of a company suspension onto its subscription."""
        subscription = await self.find_for_company(company_id)
        if subscription is None:
            return None
        return await self._suspend(subscription, reason, SuspensionSource.COMPANY)

    async def restore_for_company(self, company_id: UUID) -> Subscription | None:
        """Lift only a suspension that came from the company cascade."""
        subscription = await self.find_for_company(company_id)
        if subscription is None:
            return None
        if (
            subscription.status == SubscriptionStatus.SUSPENDED
            and subscription.suspension_source == SuspensionSource.COMPANY
        ):
            return await self._unsuspend(subscription)
        return subscription

    async def _suspend(
        self,
        subscription: Subscription,
        reason: str | None,
        source: SuspensionSource,
    ) -> Subscription:
        if subscription.status == SubscriptionStatus.SUSPENDED:
            # An admin suspension takes ownership of a company-cascade one.
            if (
                source == SuspensionSource.ADMIN
                and subscription.suspension_source == SuspensionSource.COMPANY
            ):
                subscription.suspension_source = source.value
                subscription.suspension_reason = reason or ADMIN_SUSPENSION_REASON
                await self.session.flush()
            return subscription

        SubscriptionStateMachine.validate_transition(
            subscription.status, SubscriptionStatus.SUSPENDED.value
        )
        default_reason = (
            ADMIN_SUSPENSION_REASON
            if source == SuspensionSource.ADMIN
            else COMPANY_SUSPENSION_REASON
        )
        subscription.status_before_suspension = subscription.status
        subscription.status = SubscriptionStatus.SUSPENDED.value
        subscription.suspended_at = self.clock.now()
        subscription.suspension_reason = reason or default_reason
        subscription.suspension_source = source.value
        await self.session.flush()

        logger.warning(
            "Subscription %s suspended by %s: %s",
            subscription.subscription_id,
            source.value,
            subscription.suspension_reason,
        )
        self._emit(
            SubscriptionSuspended(
                metadata=self._metadata(subscription.company_id, actor_type="admin"),
                subscription_id=subscription.subscription_id,
                reason=subscription.suspension_reason,
                source=source.value,
            )
        )
        return subscription

    async def _unsuspend(self, subscription: Subscription) -> Subscription:
        restored = SubscriptionStateMachine.status_after_unsuspend(
            subscription.status_before_suspension
        )
        SubscriptionStateMachine.validate_transition(subscription.status, restored)

        subscription.status = restored
        subscription.suspended_at = None
        subscription.suspension_reason = None
        subscription.suspension_source = None
        subscription.status_before_suspension = None
        await self.session.flush()

        logger.info(
            "Subscription %s unsuspended to %s", subscription.subscription_id, restored
        )
        self._emit(
            SubscriptionUnsuspended(
                metadata=self._metadata(subscription.company_id, actor_type="admin"),
                subscription_id=subscription.subscription_id,
                restored_status=restored,
            )
        )
        return subscription

    # ------------------------------------------------------------------
    # Admin update
    # ------------------------------------------------------------------

    async def admin_update(
        self, subscription_id: UUID, update: SubscriptionAdminUpdate
    ) -> Subscription:
        """Apply an allow-listed admin override.

        A plan resets limits, features and pricing from the catalog before
        explicit limits and pricing are applied on top. A status override is
        validated against the transition table.

        Raises:
            InvalidPlanError: Unknown plan
            InvalidTransitionError: Status override not allowed from the current status
        """
        subscription = await self.get(subscription_id)
        fields = update.model_dump(exclude_unset=True)

        if update.status is not None and update.status != subscription.status:
            SubscriptionStateMachine.validate_transition(subscription.status, update.status)

        if update.plan is not None:
            plan = get_plan(update.plan)
            if plan is None:
                raise InvalidPlanError("Invalid plan", code="INVALID_PLAN")
            cycle = subscription.billing_cycle
            if update.pricing is not None and update.pricing.billing_cycle is not None:
                cycle = update.pricing.billing_cycle
            subscription.plan = plan.plan_id
            subscription.max_employees = plan.max_employees
            subscription.max_monthly_payments = plan.max_monthly_payments
            subscription.features = plan.feature_dict()
            subscription.price_amount = calculate_price(plan.plan_id, cycle) or Decimal("0")
            subscription.currency = plan.currency

        if update.limits is not None:
            limits = update.limits.model_dump(exclude_unset=True)
            if limits.get("max_employees") is not None:
                subscription.max_employees = limits["max_employees"]
            if limits.get("max_monthly_payments") is not None:
                subscription.max_monthly_payments = limits["max_monthly_payments"]
            if limits.get("features") is not None:
                subscription.features = {**(subscription.features or {}), **limits["features"]}

        if update.pricing is not None:
            pricing = update.pricing.model_dump(exclude_unset=True)
            if pricing.get("amount") is not None:
                subscription.price_amount = pricing["amount"]
            if pricing.get("currency") is not None:
                subscription.currency = pricing["currency"].upper()
            if pricing.get("billing_cycle") is not None:
                subscription.billing_cycle = pricing["billing_cycle"]

        if update.current_period is not None:
            subscription.current_period_start = _naive_utc(update.current_period.start)
            subscription.current_period_end = _naive_utc(update.current_period.end)

        if "trial_ends_at" in fields:
            subscription.trial_ends_at = _naive_utc(update.trial_ends_at)
        if "notes" in fields:
            subscription.notes = update.notes
        if update.auto_renew is not None:
            subscription.auto_renew = update.auto_renew

        if update.status is not None and update.status != subscription.status:
            self._override_status(subscription, update.status)

        await self.session.flush()
        logger.info(
            "Admin updated subscription %s: %s",
            subscription.subscription_id,
            ", ".join(sorted(fields)),
        )
        return subscription

    def _override_status(self, subscription: Subscription, status: str) -> None:
        if status == SubscriptionStatus.SUSPENDED:
            subscription.status_before_suspension = subscription.status
            subscription.suspended_at = self.clock.now()
            subscription.suspension_reason = subscription.suspension_reason or ADMIN_SUSPENSION_REASON
            subscription.suspension_source = SuspensionSource.ADMIN.value
        elif subscription.status == SubscriptionStatus.SUSPENDED:
            subscription.suspended_at = None
            subscription.suspension_reason = None
            subscription.suspension_source = None
            subscription.status_before_suspension = None
        if status == SubscriptionStatus.CANCELLED and subscription.cancelled_at is None:
            subscription.cancelled_at = self.clock.now()
        subscription.status = status

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    async def expire_sweep(self) -> list[Subscription]:
        """Expire ended trials and cancelled subscriptions past period end."""
        now = self.clock.now()
        result = await self.session.execute(
            select(Subscription).where(
                or_(
                    and_(
                        Subscription.status == SubscriptionStatus.TRIAL.value,
                        Subscription.trial_ends_at.is_not(None),
                        Subscription.trial_ends_at <= now,
                    ),
                    and_(
                        Subscription.status == SubscriptionStatus.CANCELLED.value,
                        Subscription.current_period_end <= now,
                    ),
                )
            )
        )
        expired = list(result.scalars().all())

        for subscription in expired:
            from_status = subscription.status
            SubscriptionStateMachine.validate_transition(
                from_status, SubscriptionStatus.EXPIRED.value
            )
            subscription.status = SubscriptionStatus.EXPIRED.value
            self._emit(
                SubscriptionExpired(
                    metadata=self._metadata(subscription.company_id, actor_type="scheduler"),
                    subscription_id=subscription.subscription_id,
                    from_status=from_status,
                )
            )

        await self.session.flush()
        if expired:
            logger.info("Expired %d subscription(s)", len(expired))
        return expired

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _metadata(self, company_id: UUID, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            company_id=company_id,
            actor_type=actor_type,
            source_service="subscriptions",
            timestamp=self.clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        self.emitter.emit(event)
