"""Subscription plans, lifecycle and entitlements."""

from workforce_payroll.subscriptions.entitlement import EntitlementService, UsageSnapshot
from workforce_payroll.subscriptions.lifecycle import (
    PlanChangeResult,
    SubscriptionAdminUpdate,
    SubscriptionService,
)
from workforce_payroll.subscriptions.plans import (
    PLAN_CATALOG,
    PlanConfig,
    calculate_price,
    can_downgrade,
    can_upgrade,
    get_all_plans,
    get_plan,
    plan_rank,
)
from workforce_payroll.subscriptions.state_machine import (
    SubscriptionStateMachine,
    SubscriptionStatus,
    SuspensionSource,
)

__all__ = [
    "EntitlementService",
    "UsageSnapshot",
    "PlanChangeResult",
    "SubscriptionAdminUpdate",
    "SubscriptionService",
    "PLAN_CATALOG",
    "PlanConfig",
    "calculate_price",
    "can_downgrade",
    "can_upgrade",
    "get_all_plans",
    "get_plan",
    "plan_rank",
    "SubscriptionStateMachine",
    "SubscriptionStatus",
    "SuspensionSource",
]
