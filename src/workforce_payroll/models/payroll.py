"""Time log, payment and payment claim models."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_payroll.models.base import Base, TimestampMixin

HOURS_QUANT = Decimal("0.0001")
SECONDS_PER_HOUR = Decimal("3600")


class TimeLog(Base, TimestampMixin):
    """Recorded work interval.

    Status flow: pending -> approved -> paid. A paid log is terminal.
    """

    __tablename__ = "time_log"

    time_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    clock_in: Mapped[datetime] = mapped_column(nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_hours: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), nullable=False, default=Decimal("0")
    )
    regular_hours: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), nullable=False, default=Decimal("0")
    )
    bonus_hours: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid')",
            name="time_log_status_check",
        ),
        CheckConstraint(
            "clock_out IS NULL OR clock_out >= clock_in",
            name="time_log_clock_order_check",
        ),
        Index("time_log_employee_status_idx", "employee_id", "status", "clock_in"),
    )

    def record_clock_out(self, clock_out: datetime, daily_cap: Decimal) -> None:
        """Set clock-out and derive duration, regular and bonus hours."""
        if clock_out < self.clock_in:
            raise ValueError("clock_out must not precede clock_in")
        seconds = Decimal(str((clock_out - self.clock_in).total_seconds()))
        duration = (seconds / SECONDS_PER_HOUR).quantize(HOURS_QUANT, rounding=ROUND_HALF_UP)
        cap = Decimal(daily_cap)

        self.clock_out = clock_out
        self.duration_hours = duration
        self.regular_hours = min(duration, cap)
        self.bonus_hours = max(Decimal("0"), duration - cap)


class Payment(Base, TimestampMixin):
    """Compensation for one employee covering a disjoint set of time logs."""

    __tablename__ = "payment"

    payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    period_end: Mapped[datetime] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    regular_hours: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    bonus_hours: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    bonus_rate_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("1")
    )
    time_log_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "period_start", "period_end", name="payment_employee_period_unique"
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'processing', 'completed', 'failed')",
            name="payment_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payment_period_check"),
        CheckConstraint("amount >= 0", name="payment_amount_check"),
        Index("payment_employee_status_idx", "employee_id", "status"),
    )

    @property
    def covered_log_ids(self) -> list[UUID]:
        """Time log ids covered by this payment, in stored order."""
        return [UUID(value) for value in self.time_log_ids or []]


class PaymentTimeLog(Base, TimestampMixin):
    """Claim of one time log by exactly one payment.

    The primary key on ``time_log_id`` is what makes double payment of a log
    impossible at the store level.
    """

    __tablename__ = "payment_time_log"

    time_log_id: Mapped[UUID] = mapped_column(
        ForeignKey("time_log.time_log_id", ondelete="CASCADE"),
        primary_key=True,
    )
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment.payment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
