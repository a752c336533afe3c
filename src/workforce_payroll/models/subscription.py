"""Subscription model."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, TimestampMixin

SECONDS_PER_DAY = 24 * 60 * 60


class Subscription(Base, TimestampMixin):
    """Per-company plan, limits, billing period and usage counters."""

    __tablename__ = "subscription"

    subscription_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    plan: Mapped[str] = mapped_column(String, nullable=False, default="free")
    status: Mapped[str] = mapped_column(String, nullable=False, default="trial")

    # Limits (-1 means unlimited)
    max_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    max_monthly_payments: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    features: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Pricing snapshot
    price_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ETB")
    billing_cycle: Mapped[str] = mapped_column(String, nullable=False, default="monthly")

    current_period_start: Mapped[datetime] = mapped_column(nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(nullable=False)
    trial_ends_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    suspended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    suspension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    suspension_source: Mapped[str | None] = mapped_column(String, nullable=True)
    status_before_suspension: Mapped[str | None] = mapped_column(String, nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Usage counters (advisory, last-write-wins)
    employees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payments_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_last_updated: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "plan IN ('free', 'starter', 'professional', 'enterprise')",
            name="subscription_plan_check",
        ),
        CheckConstraint(
            "status IN ('trial', 'active', 'suspended', 'cancelled', 'expired')",
            name="subscription_status_check",
        ),
        CheckConstraint(
            "billing_cycle IN ('monthly', 'quarterly', 'yearly')",
            name="subscription_billing_cycle_check",
        ),
        CheckConstraint(
            "suspension_source IS NULL OR suspension_source IN ('admin', 'company')",
            name="subscription_suspension_source_check",
        ),
        CheckConstraint(
            "current_period_end >= current_period_start",
            name="subscription_period_check",
        ),
    )

    def is_valid(self, now: datetime) -> bool:
        """Authoritative access check.

        Active subscriptions are valid regardless of period end; expiry is
        only ever applied by the periodic sweep.
        """
        if self.status == "active":
            return True
        if self.status == "trial" and self.trial_ends_at is not None:
            return self.trial_ends_at > now
        return False

    def get_days_remaining(self, now: datetime) -> int:
        """Whole days (rounded up) until the trial or period end."""
        end = self.trial_ends_at if self.status == "trial" else self.current_period_end
        if end is None:
            return 0
        return math.ceil((end - now).total_seconds() / SECONDS_PER_DAY)

    def has_feature(self, name: str) -> bool:
        """Feature flag lookup; unknown features are unavailable."""
        return (self.features or {}).get(name) is True

    @property
    def is_unlimited_employees(self) -> bool:
        return self.max_employees == -1

    @property
    def is_unlimited_payments(self) -> bool:
        return self.max_monthly_payments == -1
