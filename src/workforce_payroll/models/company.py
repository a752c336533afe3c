"""Company (tenant) model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, TimestampMixin

PAYMENT_CYCLES = ("daily", "weekly", "monthly")


class Company(Base, TimestampMixin):
    """Tenant that owns employees and exactly one subscription."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    employer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_cycle: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    bonus_rate_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("1.5")
    )
    max_daily_hours: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("8")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verification_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )

    __table_args__ = (
        CheckConstraint(
            "payment_cycle IN ('daily', 'weekly', 'monthly')",
            name="company_payment_cycle_check",
        ),
        CheckConstraint(
            "verification_status IN ('pending', 'verified', 'rejected', 'suspended')",
            name="company_verification_status_check",
        ),
        CheckConstraint("bonus_rate_multiplier >= 1.0", name="company_bonus_multiplier_check"),
        CheckConstraint(
            "max_daily_hours >= 1 AND max_daily_hours <= 24",
            name="company_max_daily_hours_check",
        ),
    )
