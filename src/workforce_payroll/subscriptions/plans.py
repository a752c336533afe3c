"""Subscription plan catalog.

The catalog is an immutable ordered tuple; a plan's rank is its index, so
``free < starter < professional < enterprise``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Mapping

CUSTOM_PRICE = "custom"
UNLIMITED = -1

BILLING_CYCLES = ("monthly", "quarterly", "yearly")

BILLING_CYCLE_MULTIPLIERS: Mapping[str, Decimal] = MappingProxyType(
    {
        "monthly": Decimal("1"),
        "quarterly": Decimal("2.7"),
        "yearly": Decimal("10"),
    }
)

FEATURE_NAMES = (
    "advanced_analytics",
    "multi_location",
    "api_access",
    "custom_branding",
    "priority_support",
    "export_reports",
    "bulk_operations",
)


def _flags(*enabled: str, extra: tuple[str, ...] = ()) -> Mapping[str, bool]:
    flags = {name: name in enabled for name in FEATURE_NAMES}
    for name in extra:
        flags[name] = True
    return MappingProxyType(flags)


@dataclass(frozen=True)
class PlanConfig:
    """Descriptor of a purchasable plan."""

    plan_id: str
    name: str
    price: Decimal | str  # Decimal amount or CUSTOM_PRICE
    currency: str
    billing_cycle: str
    trial_days: int
    max_employees: int
    max_monthly_payments: int
    features: Mapping[str, bool] = field(default_factory=dict)
    feature_list: tuple[str, ...] = ()

    @property
    def is_custom_priced(self) -> bool:
        return self.price == CUSTOM_PRICE

    @property
    def has_trial(self) -> bool:
        return self.trial_days > 0

    def feature_dict(self) -> dict[str, bool]:
        """Mutable copy of the feature flags for storing on a subscription."""
        return dict(self.features)


PLAN_CATALOG: tuple[PlanConfig, ...] = (
    PlanConfig(
        plan_id="free",
        name="Free Trial",
        price=Decimal("0"),
        currency="ETB",
        billing_cycle="monthly",
        trial_days=14,
        max_employees=5,
        max_monthly_payments=50,
        features=_flags(),
        feature_list=(
            "Up to 5 employees",
            "Up to 50 payments per month",
            "Basic time tracking",
            "Basic payroll processing",
            "14-day trial",
        ),
    ),
    PlanConfig(
        plan_id="starter",
        name="Starter",
        price=Decimal("2500"),
        currency="ETB",
        billing_cycle="monthly",
        trial_days=0,
        max_employees=25,
        max_monthly_payments=500,
        features=_flags("advanced_analytics", "export_reports", "bulk_operations"),
        feature_list=(
            "Up to 25 employees",
            "Up to 500 payments per month",
            "Advanced analytics",
            "Export reports (PDF/Excel)",
            "Bulk operations",
            "Email support",
        ),
    ),
    PlanConfig(
        plan_id="professional",
        name="Professional",
        price=Decimal("7500"),
        currency="ETB",
        billing_cycle="monthly",
        trial_days=0,
        max_employees=100,
        max_monthly_payments=2000,
        features=_flags(
            "advanced_analytics",
            "multi_location",
            "api_access",
            "custom_branding",
            "export_reports",
            "bulk_operations",
        ),
        feature_list=(
            "Up to 100 employees",
            "Up to 2000 payments per month",
            "Multi-location support",
            "API access",
            "Custom branding",
            "Advanced analytics & reports",
            "Bulk operations",
        ),
    ),
    PlanConfig(
        plan_id="enterprise",
        name="Enterprise",
        price=CUSTOM_PRICE,
        currency="ETB",
        billing_cycle="yearly",
        trial_days=0,
        max_employees=UNLIMITED,
        max_monthly_payments=UNLIMITED,
        features=_flags(
            *FEATURE_NAMES,
            extra=("dedicated_account_manager", "custom_integrations", "sla"),
        ),
        feature_list=(
            "Unlimited employees",
            "Unlimited payments",
            "Everything in Professional",
            "Dedicated account manager",
            "Custom integrations",
            "99.9% SLA",
            "Phone & priority support",
        ),
    ),
)

_PLANS_BY_ID: Mapping[str, PlanConfig] = MappingProxyType(
    {plan.plan_id: plan for plan in PLAN_CATALOG}
)
_RANKS: Mapping[str, int] = MappingProxyType(
    {plan.plan_id: index for index, plan in enumerate(PLAN_CATALOG)}
)


def get_plan(plan_id: str) -> PlanConfig | None:
    """Look up a plan by id; unknown ids return None."""
    return _PLANS_BY_ID.get(plan_id)


def get_all_plans() -> tuple[PlanConfig, ...]:
    """All plans in rank order."""
    return PLAN_CATALOG


def plan_rank(plan_id: str) -> int:
    """Index of the plan in the catalog, -1 when unknown."""
    return _RANKS.get(plan_id, -1)


def calculate_price(plan_id: str, billing_cycle: str | None = None) -> Decimal | None:
    """Price of a plan for a billing cycle.

    Returns None for an unknown plan or cycle and for custom-priced plans.
    A missing cycle means the plan's default cycle.
    """
    plan = get_plan(plan_id)
    if plan is None or plan.is_custom_priced:
        return None

    cycle = billing_cycle or plan.billing_cycle
    multiplier = BILLING_CYCLE_MULTIPLIERS.get(cycle)
    if multiplier is None:
        return None
    return (Decimal(plan.price) * multiplier).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def can_upgrade(current_plan: str, target_plan: str) -> bool:
    """Whether ``target_plan`` ranks strictly above ``current_plan``."""
    current, target = plan_rank(current_plan), plan_rank(target_plan)
    return current >= 0 and target > current


def can_downgrade(current_plan: str, target_plan: str) -> bool:
    """Whether ``target_plan`` ranks strictly below ``current_plan``."""
    current, target = plan_rank(current_plan), plan_rank(target_plan)
    return target >= 0 and current > target
