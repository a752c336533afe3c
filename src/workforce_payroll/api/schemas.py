"""Pydantic schemas for API request/response models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from workforce_payroll.calculators.types import PaymentOutcome


def naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ============================================================================
# Common
# ============================================================================


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
    code: str


class PeriodRequest(BaseModel):
    """Inclusive [period_start, period_end] window."""

    period_start: datetime
    period_end: datetime

    @field_validator("period_start", "period_end")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        return naive_utc(value)

    @model_validator(mode="after")
    def check_order(self) -> "PeriodRequest":
        if self.period_start > self.period_end:
            raise ValueError("period_start must not be after period_end")
        return self


# ============================================================================
# Company schemas
# ============================================================================


class CompanyCreate(BaseModel):
    """Schema for onboarding a company."""

    name: str = Field(min_length=1)
    employer_name: str | None = None
    payment_cycle: Literal["daily", "weekly", "monthly"] = "monthly"
    bonus_rate_multiplier: Decimal = Field(default=Decimal("1.5"), ge=1)
    max_daily_hours: Decimal = Field(default=Decimal("8"), ge=1, le=24)
    plan: str = "free"


class CompanyResponse(BaseModel):
    """Schema for company response."""

    model_config = ConfigDict(from_attributes=True)

    company_id: UUID
    name: str
    employer_name: str | None = None
    payment_cycle: str
    bonus_rate_multiplier: Decimal
    max_daily_hours: Decimal
    is_active: bool
    verification_status: str
    created_at: datetime


class SuspensionRequest(BaseModel):
    """Suspend or restore a company."""

    suspend: bool
    reason: str | None = None


class JobRoleCreate(BaseModel):
    name: str = Field(min_length=1)
    base_rate: Decimal | None = Field(default=None, ge=0)
    overtime_rate: Decimal | None = Field(default=None, ge=0)
    role_bonus: Decimal | None = Field(default=None, ge=0)


class JobRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_role_id: UUID
    company_id: UUID
    name: str
    base_rate: Decimal | None = None
    overtime_rate: Decimal | None = None
    role_bonus: Decimal | None = None


class EmployeeCreate(BaseModel):
    """Schema for adding an employee."""

    name: str = Field(min_length=1)
    email: str | None = None
    hourly_rate: Decimal = Field(default=Decimal("0"), ge=0)
    job_role_id: UUID | None = None


class EmployeeResponse(BaseModel):
    """Schema for employee response."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    company_id: UUID
    name: str
    email: str | None = None
    hourly_rate: Decimal
    job_role_id: UUID | None = None
    is_active: bool


# ============================================================================
# Time log schemas
# ============================================================================


class ClockInRequest(BaseModel):
    employee_id: UUID


class TimeLogResponse(BaseModel):
    """Schema for time log response."""

    model_config = ConfigDict(from_attributes=True)

    time_log_id: UUID
    employee_id: UUID
    clock_in: datetime
    clock_out: datetime | None = None
    duration_hours: Decimal
    regular_hours: Decimal
    bonus_hours: Decimal
    status: str
    approved_at: datetime | None = None


# ============================================================================
# Payroll schemas
# ============================================================================


class ComputePayrollRequest(PeriodRequest):
    """Schema for computing payroll over an explicit window."""

    company_id: UUID
    include_inactive: bool = False


class RunCycleRequest(BaseModel):
    company_id: UUID


class PaymentPreviewRequest(BaseModel):
    employee_id: UUID
    time_log_ids: list[UUID] = Field(min_length=1)


class PaymentPreviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    regular_hours: Decimal
    bonus_hours: Decimal
    regular_pay: Decimal
    bonus_pay: Decimal
    total_pay: Decimal


class EmployeePayrollResultResponse(BaseModel):
    """One (employee, day) row of a payroll run."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    period_start: datetime
    period_end: datetime
    outcome: PaymentOutcome
    payment_id: UUID | None = None
    regular_hours: Decimal
    bonus_hours: Decimal
    regular_pay: Decimal
    bonus_pay: Decimal
    total_pay: Decimal
    time_log_count: int
    existing_status: str | None = None
    error: str | None = None


class PayrollRunResponse(BaseModel):
    """Schema for a payroll run result."""

    model_config = ConfigDict(from_attributes=True)

    company_id: UUID
    company_name: str
    period_start: datetime
    period_end: datetime
    total_employees: int
    employees_with_payments: int
    total_amount: Decimal
    error_count: int
    results: list[EmployeePayrollResultResponse]


class PayrollSummaryResponse(BaseModel):
    """Schema for payroll summary response."""

    model_config = ConfigDict(from_attributes=True)

    company_id: UUID
    company_name: str
    period_start: datetime
    period_end: datetime
    total_employees: int
    total_payments: int
    total_amount: Decimal
    pending_payments: int
    approved_payments: int
    processing_payments: int
    completed_payments: int
    failed_payments: int


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    employee_id: UUID
    period_start: datetime
    period_end: datetime
    amount: Decimal
    regular_hours: Decimal
    bonus_hours: Decimal
    hourly_rate: Decimal
    bonus_rate_multiplier: Decimal
    time_log_ids: list[str]
    status: str
    approved_at: datetime | None = None
    processed_at: datetime | None = None
    failure_reason: str | None = None
    retry_count: int
    created_at: datetime


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    total: int
    page: int
    page_size: int


class PaymentFailureRequest(BaseModel):
    reason: str = Field(min_length=1)


# ============================================================================
# Subscription schemas
# ============================================================================


class PlanResponse(BaseModel):
    """Catalog entry."""

    plan_id: str
    name: str
    price: Decimal | str
    currency: str
    billing_cycle: str
    trial_days: int
    max_employees: int
    max_monthly_payments: int
    features: dict[str, bool]
    feature_list: list[str]


class SubscriptionResponse(BaseModel):
    """Schema for subscription response."""

    model_config = ConfigDict(from_attributes=True)

    subscription_id: UUID
    company_id: UUID
    plan: str
    status: str
    max_employees: int
    max_monthly_payments: int
    features: dict[str, Any]
    price_amount: Decimal
    currency: str
    billing_cycle: str
    current_period_start: datetime
    current_period_end: datetime
    trial_ends_at: datetime | None = None
    cancelled_at: datetime | None = None
    suspended_at: datetime | None = None
    suspension_reason: str | None = None
    suspension_source: str | None = None
    auto_renew: bool
    notes: str | None = None
    employees_count: int
    payments_this_month: int
    usage_last_updated: datetime | None = None
    days_remaining: int | None = None


class SubscriptionListResponse(BaseModel):
    items: list[SubscriptionResponse]
    total: int
    page: int
    page_size: int


class ChangePlanRequest(BaseModel):
    plan: str
    billing_cycle: Literal["monthly", "quarterly", "yearly"] | None = None


class ChangePlanResponse(BaseModel):
    subscription: SubscriptionResponse
    direction: str
    plan: PlanResponse


class SuspendSubscriptionRequest(BaseModel):
    reason: str | None = None


class UsageResponse(BaseModel):
    """Current usage against plan limits."""

    employees_count: int
    max_employees: int
    payments_this_month: int
    max_monthly_payments: int
    last_updated: datetime


class ExpireSweepResponse(BaseModel):
    expired: list[UUID]
