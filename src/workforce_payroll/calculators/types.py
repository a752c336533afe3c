"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal) -> Decimal:
    """Quantize to cents with half-up rounding."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentOutcome(str, Enum):
    """What a payroll run did for one (employee, day) bucket."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class RateSource(str, Enum):
    """Where an employee's effective rates came from."""

    JOB_ROLE = "job_role"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class EffectiveRates:
    """Rates applied to an employee's hours."""

    base: Decimal
    overtime: Decimal = ZERO
    role_bonus: Decimal = ZERO
    source: RateSource = RateSource.EMPLOYEE


@dataclass(frozen=True)
class PayBreakdown:
    """Hours and pay for a set of time logs."""

    regular_hours: Decimal
    bonus_hours: Decimal
    regular_pay: Decimal
    bonus_pay: Decimal
    total_pay: Decimal

    @property
    def has_hours(self) -> bool:
        return self.regular_hours > 0 or self.bonus_hours > 0

    @classmethod
    def compute(
        cls,
        regular_hours: Decimal,
        bonus_hours: Decimal,
        rates: EffectiveRates,
    ) -> PayBreakdown:
        """Apply rates to hour totals.

        regular_pay = regular_hours * base
        bonus_pay = bonus_hours * overtime + role_bonus
        """
        regular_pay = to_money(regular_hours * rates.base)
        bonus_pay = to_money(bonus_hours * rates.overtime + rates.role_bonus)
        return cls(
            regular_hours=regular_hours,
            bonus_hours=bonus_hours,
            regular_pay=regular_pay,
            bonus_pay=bonus_pay,
            total_pay=to_money(regular_pay + bonus_pay),
        )


@dataclass
class EmployeePayrollResult:
    """Result row for one (employee, day) payment bucket."""

    employee_id: UUID
    employee_name: str
    period_start: datetime
    period_end: datetime
    outcome: PaymentOutcome
    payment_id: UUID | None = None
    regular_hours: Decimal = ZERO
    bonus_hours: Decimal = ZERO
    regular_pay: Decimal = ZERO
    bonus_pay: Decimal = ZERO
    total_pay: Decimal = ZERO
    time_log_count: int = 0
    existing_status: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class PayrollRunResult:
    """Result of computing payroll for a company and window."""

    company_id: UUID
    company_name: str
    period_start: datetime
    period_end: datetime
    total_employees: int = 0
    results: list[EmployeePayrollResult] = field(default_factory=list)

    @property
    def employees_with_payments(self) -> int:
        """Distinct employees having at least one row that did not fail."""
        return len({row.employee_id for row in self.results if row.succeeded})

    @property
    def total_amount(self) -> Decimal:
        """Sum of pay over rows that did not fail."""
        return to_money(sum((row.total_pay for row in self.results if row.succeeded), ZERO))

    def count(self, outcome: PaymentOutcome) -> int:
        return sum(1 for row in self.results if row.outcome == outcome and row.succeeded)

    @property
    def error_count(self) -> int:
        return sum(1 for row in self.results if not row.succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "total_employees": self.total_employees,
            "employees_with_payments": self.employees_with_payments,
            "total_amount": self.total_amount,
            "results": list(self.results),
        }
