"""Subscription lifecycle: plan changes, cancellation, suspension and expiry."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from pydantic import ValidationError

from workforce_payroll.errors import (
    InvalidPlanError,
    InvalidStateError,
    InvalidTransitionError,
    LimitExceededError,
)
from workforce_payroll.events import (
    SubscriptionCancelled,
    SubscriptionExpired,
    SubscriptionPlanChanged,
    SubscriptionSuspended,
    SubscriptionUnsuspended,
)
from workforce_payroll.subscriptions.lifecycle import (
    ADMIN_SUSPENSION_REASON,
    COMPANY_SUSPENSION_REASON,
    SubscriptionAdminUpdate,
    SubscriptionService,
)

NOW = datetime(2026, 1, 15, 12, 0)


@pytest.fixture
def subscriptions(session, clock, emitter) -> SubscriptionService:
    return SubscriptionService(session, clock, emitter)


@pytest_asyncio.fixture
async def subscription(subscriptions, company):
    return await subscriptions.get_for_company(company.company_id)


class TestCreate:
    """Subscriptions created at onboarding."""

    async def test_free_plan_starts_a_trial(self, subscription):
        assert subscription.plan == "free"
        assert subscription.status == "trial"
        assert subscription.max_employees == 5
        assert subscription.max_monthly_payments == 50
        assert subscription.price_amount == Decimal("0")
        assert subscription.trial_ends_at == NOW + timedelta(days=14)
        assert subscription.current_period_start == NOW
        assert subscription.current_period_end == datetime(2026, 2, 15, 12, 0)
        assert subscription.auto_renew is True
        assert not any(subscription.features.values())

    async def test_paid_plan_starts_active(self, session, company_service):
        company = await company_service.create_company("Merkato Logistics", plan_id="starter")
        subscription = await company_service.subscriptions.get_for_company(company.company_id)

        assert subscription.status == "active"
        assert subscription.trial_ends_at is None
        assert subscription.price_amount == Decimal("2500")
        assert subscription.has_feature("export_reports")

    async def test_unknown_plan(self, subscriptions, company):
        with pytest.raises(InvalidPlanError) as exc_info:
            await subscriptions.create(company.company_id, "platinum")
        assert exc_info.value.code == "INVALID_PLAN"


class TestChangePlan:
    """Upgrades, downgrades and their guards."""

    async def test_upgrade_ends_trial(self, subscriptions, subscription, company, events):
        result = await subscriptions.change_plan(company.company_id, "starter")

        assert result.direction == "upgrade"
        assert result.changed
        assert subscription.plan == "starter"
        assert subscription.status == "active"
        assert subscription.trial_ends_at is None
        assert subscription.max_employees == 25
        assert subscription.max_monthly_payments == 500
        assert subscription.price_amount == Decimal("2500.00")
        assert subscription.has_feature("bulk_operations")
        assert not subscription.has_feature("api_access")

        changed = [event for event in events if isinstance(event, SubscriptionPlanChanged)]
        assert len(changed) == 1
        assert (changed[0].from_plan, changed[0].to_plan) == ("free", "starter")

    async def test_billing_cycle_prices_the_plan(self, subscriptions, subscription, company):
        await subscriptions.change_plan(company.company_id, "starter", billing_cycle="quarterly")

        assert subscription.billing_cycle == "quarterly"
        assert subscription.price_amount == Decimal("6750.00")

    async def test_same_plan_and_cycle_is_unchanged(self, subscriptions, company, events):
        result = await subscriptions.change_plan(company.company_id, "free")

        assert result.direction == "unchanged"
        assert not result.changed
        assert not [event for event in events if isinstance(event, SubscriptionPlanChanged)]

    async def test_unknown_plan(self, subscriptions, company):
        with pytest.raises(InvalidPlanError) as exc_info:
            await subscriptions.change_plan(company.company_id, "platinum")
        assert exc_info.value.code == "INVALID_PLAN"

    async def test_unknown_billing_cycle(self, subscriptions, company):
        with pytest.raises(InvalidPlanError) as exc_info:
            await subscriptions.change_plan(company.company_id, "starter", billing_cycle="weekly")
        assert exc_info.value.code == "INVALID_BILLING_CYCLE"

    async def test_downgrade_blocked_by_employee_count(
        self, session, subscriptions, subscription, company
    ):
        await subscriptions.change_plan(company.company_id, "professional")
        subscription.employees_count = 30
        await session.flush()

        with pytest.raises(LimitExceededError) as exc_info:
            await subscriptions.change_plan(company.company_id, "starter")

        error = exc_info.value
        assert error.code == "EMPLOYEE_COUNT_EXCEEDS_LIMIT"
        assert error.status_code == 400
        assert error.details == {"employees_count": 30, "limit": 25}
        assert subscription.plan == "professional"

    async def test_downgrade_allowed_within_limit(
        self, session, subscriptions, subscription, company
    ):
        await subscriptions.change_plan(company.company_id, "enterprise")
        subscription.employees_count = 30
        await session.flush()

        result = await subscriptions.change_plan(company.company_id, "professional")

        assert result.direction == "downgrade"
        assert subscription.max_employees == 100

    async def test_unlimited_target_ignores_employee_count(
        self, session, subscriptions, subscription, company
    ):
        await subscriptions.change_plan(company.company_id, "professional")
        subscription.employees_count = 30
        await session.flush()

        result = await subscriptions.change_plan(company.company_id, "enterprise")

        assert result.direction == "upgrade"
        assert subscription.plan == "enterprise"
        assert subscription.is_unlimited_employees

    async def test_upgrade_is_not_blocked_by_employee_count(
        self, session, subscriptions, subscription, company
    ):
        await subscriptions.admin_update(
            subscription.subscription_id,
            SubscriptionAdminUpdate.model_validate({"limits": {"max_employees": 40}}),
        )
        subscription.employees_count = 30
        await session.flush()

        result = await subscriptions.change_plan(company.company_id, "starter")

        assert result.direction == "upgrade"
        assert subscription.plan == "starter"
        assert subscription.max_employees == 25

    async def test_enterprise_is_unlimited_and_custom_priced(
        self, subscriptions, subscription, company
    ):
        await subscriptions.change_plan(company.company_id, "enterprise")

        assert subscription.is_unlimited_employees
        assert subscription.is_unlimited_payments
        assert subscription.price_amount == Decimal("0")
        assert subscription.has_feature("sla")

    async def test_cancelled_subscription_cannot_change_plan(self, subscriptions, company):
        await subscriptions.cancel(company.company_id)

        with pytest.raises(InvalidStateError):
            await subscriptions.change_plan(company.company_id, "starter")


class TestCancelAndReactivate:
    async def test_cancel(self, subscriptions, subscription, company, events):
        await subscriptions.cancel(company.company_id)

        assert subscription.status == "cancelled"
        assert subscription.cancelled_at == NOW
        assert subscription.auto_renew is False

        cancelled = [event for event in events if isinstance(event, SubscriptionCancelled)]
        assert cancelled[0].access_until == subscription.current_period_end

    async def test_cancel_twice(self, subscriptions, company):
        await subscriptions.cancel(company.company_id)

        with pytest.raises(InvalidStateError):
            await subscriptions.cancel(company.company_id)

    async def test_reactivate_starts_fresh_period(
        self, subscriptions, subscription, company, clock
    ):
        await subscriptions.cancel(company.company_id)
        clock.advance(timedelta(days=3))

        await subscriptions.reactivate(company.company_id)

        assert subscription.status == "active"
        assert subscription.cancelled_at is None
        assert subscription.auto_renew is True
        assert subscription.current_period_start == NOW + timedelta(days=3)
        assert subscription.current_period_end == datetime(2026, 2, 18, 12, 0)

    async def test_reactivate_expired(self, subscriptions, subscription, company, clock):
        clock.advance(timedelta(days=15))
        await subscriptions.expire_sweep()
        assert subscription.status == "expired"

        await subscriptions.reactivate(company.company_id)

        assert subscription.status == "active"

    async def test_reactivate_active(self, subscriptions, company):
        with pytest.raises(InvalidStateError, match="already active"):
            await subscriptions.reactivate(company.company_id)

    async def test_reactivate_suspended(self, subscriptions, subscription, company):
        await subscriptions.suspend(subscription.subscription_id)

        with pytest.raises(InvalidStateError, match="restored by an admin"):
            await subscriptions.reactivate(company.company_id)


class TestSuspension:
    """Admin suspension and the company cascade."""

    async def test_admin_suspend_and_unsuspend(self, subscriptions, subscription, events):
        await subscriptions.suspend(subscription.subscription_id)

        assert subscription.status == "suspended"
        assert subscription.suspension_source == "admin"
        assert subscription.suspension_reason == ADMIN_SUSPENSION_REASON
        assert subscription.suspended_at == NOW
        assert subscription.status_before_suspension == "trial"

        await subscriptions.unsuspend(subscription.subscription_id)

        assert subscription.status == "active"
        assert subscription.suspended_at is None
        assert subscription.suspension_reason is None
        assert subscription.suspension_source is None

        kinds = [type(event) for event in events]
        assert SubscriptionSuspended in kinds
        assert SubscriptionUnsuspended in kinds

    async def test_unsuspend_restores_cancelled(self, subscriptions, subscription, company):
        await subscriptions.cancel(company.company_id)
        await subscriptions.suspend(subscription.subscription_id, reason="Chargeback")

        assert subscription.suspension_reason == "Chargeback"

        await subscriptions.unsuspend(subscription.subscription_id)
        assert subscription.status == "cancelled"

    async def test_unsuspend_requires_suspension(self, subscriptions, subscription):
        with pytest.raises(InvalidStateError, match="not suspended"):
            await subscriptions.unsuspend(subscription.subscription_id)

    async def test_company_cascade(self, company_service, subscription, company):
        await company_service.set_suspended(company.company_id, True)

        assert company.is_active is False
        assert company.verification_status == "suspended"
        assert subscription.status == "suspended"
        assert subscription.suspension_source == "company"
        assert subscription.suspension_reason == COMPANY_SUSPENSION_REASON

        await company_service.set_suspended(company.company_id, False)

        assert company.is_active is True
        assert company.verification_status == "verified"
        assert subscription.status == "active"

    async def test_admin_takes_over_company_suspension(
        self, company_service, subscriptions, subscription, company
    ):
        await company_service.set_suspended(company.company_id, True)
        await subscriptions.suspend(subscription.subscription_id, reason="Fraud review")

        assert subscription.suspension_source == "admin"
        assert subscription.suspension_reason == "Fraud review"

        await company_service.set_suspended(company.company_id, False)

        assert company.is_active is True
        assert subscription.status == "suspended"
        assert subscription.suspension_reason == "Fraud review"

    async def test_company_cascade_keeps_admin_suspension(
        self, company_service, subscriptions, subscription, company, events
    ):
        await subscriptions.suspend(subscription.subscription_id, reason="Fraud review")
        await company_service.set_suspended(company.company_id, True, reason="KYC failed")

        assert subscription.suspension_source == "admin"
        assert subscription.suspension_reason == "Fraud review"
        assert len([event for event in events if isinstance(event, SubscriptionSuspended)]) == 1


class TestAdminUpdate:
    """Allow-listed admin overrides."""

    async def test_plan_resets_limits_and_features(self, subscriptions, subscription):
        await subscriptions.admin_update(
            subscription.subscription_id, SubscriptionAdminUpdate(plan="professional")
        )

        assert subscription.plan == "professional"
        assert subscription.max_employees == 100
        assert subscription.max_monthly_payments == 2000
        assert subscription.has_feature("api_access")
        # Status is left alone by a plan override
        assert subscription.status == "trial"

    async def test_explicit_limits_win_over_catalog(self, subscriptions, subscription):
        update = SubscriptionAdminUpdate.model_validate(
            {
                "plan": "starter",
                "limits": {"max_employees": 40, "features": {"api_access": True}},
            }
        )
        await subscriptions.admin_update(subscription.subscription_id, update)

        assert subscription.plan == "starter"
        assert subscription.max_employees == 40
        assert subscription.max_monthly_payments == 500
        assert subscription.has_feature("api_access")
        assert subscription.has_feature("bulk_operations")

    async def test_plan_resets_pricing(self, subscriptions, subscription):
        await subscriptions.admin_update(
            subscription.subscription_id, SubscriptionAdminUpdate(plan="professional")
        )

        assert subscription.price_amount == Decimal("7500.00")
        assert subscription.currency == "ETB"
        assert subscription.billing_cycle == "monthly"

    async def test_explicit_pricing_wins_over_catalog(self, subscriptions, subscription):
        update = SubscriptionAdminUpdate.model_validate(
            {"plan": "starter", "pricing": {"billing_cycle": "quarterly"}}
        )
        await subscriptions.admin_update(subscription.subscription_id, update)

        assert subscription.billing_cycle == "quarterly"
        assert subscription.price_amount == Decimal("6750.00")

        update = SubscriptionAdminUpdate.model_validate(
            {"plan": "professional", "pricing": {"amount": "5000"}}
        )
        await subscriptions.admin_update(subscription.subscription_id, update)

        assert subscription.price_amount == Decimal("5000")
        assert subscription.billing_cycle == "quarterly"

    async def test_status_override_follows_transitions(
        self, subscriptions, subscription, company
    ):
        await subscriptions.cancel(company.company_id)

        with pytest.raises(InvalidTransitionError):
            await subscriptions.admin_update(
                subscription.subscription_id,
                SubscriptionAdminUpdate(status="trial", notes="back to trial"),
            )
        assert subscription.status == "cancelled"
        assert subscription.notes is None

    async def test_pricing_notes_and_renewal(self, subscriptions, subscription):
        update = SubscriptionAdminUpdate.model_validate(
            {
                "pricing": {"amount": "1999.50", "currency": "usd", "billing_cycle": "yearly"},
                "notes": "Negotiated rate",
                "auto_renew": False,
            }
        )
        await subscriptions.admin_update(subscription.subscription_id, update)

        assert subscription.price_amount == Decimal("1999.50")
        assert subscription.currency == "USD"
        assert subscription.billing_cycle == "yearly"
        assert subscription.notes == "Negotiated rate"
        assert subscription.auto_renew is False

    async def test_status_override_keeps_suspension_fields(
        self, subscriptions, subscription
    ):
        await subscriptions.admin_update(
            subscription.subscription_id, SubscriptionAdminUpdate(status="suspended")
        )
        assert subscription.suspension_source == "admin"
        assert subscription.suspended_at == NOW

        await subscriptions.admin_update(
            subscription.subscription_id, SubscriptionAdminUpdate(status="cancelled")
        )
        assert subscription.status == "cancelled"
        assert subscription.cancelled_at == NOW
        assert subscription.suspension_source is None
        assert subscription.suspended_at is None

    async def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            SubscriptionAdminUpdate.model_validate({"employees_count": 0})
        with pytest.raises(ValidationError):
            SubscriptionAdminUpdate.model_validate({"limits": {"max_seats": 10}})

    async def test_period_must_be_ordered(self):
        with pytest.raises(ValidationError):
            SubscriptionAdminUpdate.model_validate(
                {"current_period": {"start": "2026-02-01T00:00:00", "end": "2026-01-01T00:00:00"}}
            )


class TestExpiry:
    """Validity, remaining days and the expiry sweep."""

    async def test_days_remaining(self, subscription, clock):
        assert subscription.get_days_remaining(clock.now()) == 14

        clock.advance(timedelta(days=11))
        assert subscription.get_days_remaining(clock.now()) == 3

        clock.advance(timedelta(days=6))
        assert subscription.get_days_remaining(clock.now()) <= 0

    async def test_validity(self, subscriptions, subscription, company, clock):
        assert subscription.is_valid(clock.now())
        assert not subscription.is_valid(NOW + timedelta(days=14))

        await subscriptions.change_plan(company.company_id, "starter")
        assert subscription.is_valid(NOW + timedelta(days=400))

        await subscriptions.suspend(subscription.subscription_id)
        assert not subscription.is_valid(clock.now())

    async def test_sweep_expires_ended_trials(self, subscriptions, subscription, clock, events):
        assert await subscriptions.expire_sweep() == []

        clock.advance(timedelta(days=14))
        expired = await subscriptions.expire_sweep()

        assert [item.subscription_id for item in expired] == [subscription.subscription_id]
        assert subscription.status == "expired"
        assert [type(event) for event in events][-1] is SubscriptionExpired

    async def test_sweep_expires_cancelled_after_period(
        self, company_service, subscriptions, clock
    ):
        company = await company_service.create_company("Merkato Logistics", plan_id="starter")
        subscription = await subscriptions.get_for_company(company.company_id)
        await subscriptions.cancel(company.company_id)

        clock.advance(timedelta(days=20))
        assert await subscriptions.expire_sweep() == []
        assert subscription.status == "cancelled"

        clock.advance(timedelta(days=20))
        await subscriptions.expire_sweep()
        assert subscription.status == "expired"

    async def test_sweep_leaves_active_subscriptions(
        self, subscriptions, subscription, company, clock
    ):
        await subscriptions.change_plan(company.company_id, "starter")
        clock.advance(timedelta(days=90))

        assert await subscriptions.expire_sweep() == []
        assert subscription.status == "active"
