"""Subscription plan, lifecycle and admin endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from workforce_payroll.api.dependencies import DbSession, Emitter, RequestClock
from workforce_payroll.api.schemas import (
    ChangePlanRequest,
    ChangePlanResponse,
    ErrorResponse,
    ExpireSweepResponse,
    PlanResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    SuspendSubscriptionRequest,
    UsageResponse,
)
from workforce_payroll.clock import Clock
from workforce_payroll.models import Subscription
from workforce_payroll.subscriptions import (
    EntitlementService,
    PlanConfig,
    SubscriptionAdminUpdate,
    SubscriptionService,
    get_all_plans,
)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _plan_response(plan: PlanConfig) -> PlanResponse:
    return PlanResponse(
        plan_id=plan.plan_id,
        name=plan.name,
        price=plan.price,
        currency=plan.currency,
        billing_cycle=plan.billing_cycle,
        trial_days=plan.trial_days,
        max_employees=plan.max_employees,
        max_monthly_payments=plan.max_monthly_payments,
        features=plan.feature_dict(),
        feature_list=list(plan.feature_list),
    )


def _subscription_response(subscription: Subscription, clock: Clock) -> SubscriptionResponse:
    response = SubscriptionResponse.model_validate(subscription)
    response.days_remaining = subscription.get_days_remaining(clock.now())
    return response


# ============================================================================
# Catalog
# ============================================================================


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans() -> list[PlanResponse]:
    """All plans in rank order."""
    return [_plan_response(plan) for plan in get_all_plans()]


# ============================================================================
# Company-facing lifecycle
# ============================================================================


@router.get(
    "/companies/{company_id}",
    response_model=SubscriptionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_current_subscription(
    db: DbSession,
    clock: RequestClock,
    company_id: Annotated[UUID, Path()],
) -> SubscriptionResponse:
    subscription = await SubscriptionService(db, clock).get_for_company(company_id)
    return _subscription_response(subscription, clock)


@router.get(
    "/companies/{company_id}/usage",
    response_model=UsageResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_usage(
    db: DbSession,
    clock: RequestClock,
    company_id: Annotated[UUID, Path()],
) -> UsageResponse:
    """Refresh and return usage counters against plan limits."""
    subscription = await SubscriptionService(db, clock).get_for_company(company_id)
    snapshot = await EntitlementService(db, clock).update_usage_stats(subscription)
    await db.commit()
    return UsageResponse(
        employees_count=snapshot.employees_count,
        max_employees=subscription.max_employees,
        payments_this_month=snapshot.payments_this_month,
        max_monthly_payments=subscription.max_monthly_payments,
        last_updated=snapshot.last_updated,
    )


@router.post(
    "/companies/{company_id}/change-plan",
    response_model=ChangePlanResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def change_plan(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    company_id: Annotated[UUID, Path()],
    payload: ChangePlanRequest,
) -> ChangePlanResponse:
    service = SubscriptionService(db, clock, emitter)
    result = await service.change_plan(company_id, payload.plan, payload.billing_cycle)
    await db.commit()
    return ChangePlanResponse(
        subscription=_subscription_response(result.subscription, clock),
        direction=result.direction,
        plan=_plan_response(result.plan),
    )


@router.post(
    "/companies/{company_id}/cancel",
    response_model=SubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def cancel_subscription(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    company_id: Annotated[UUID, Path()],
) -> SubscriptionResponse:
    """Cancel; access continues until the current period ends."""
    subscription = await SubscriptionService(db, clock, emitter).cancel(company_id)
    await db.commit()
    return _subscription_response(subscription, clock)


@router.post(
    "/companies/{company_id}/reactivate",
    response_model=SubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def reactivate_subscription(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    company_id: Annotated[UUID, Path()],
) -> SubscriptionResponse:
    subscription = await SubscriptionService(db, clock, emitter).reactivate(company_id)
    await db.commit()
    return _subscription_response(subscription, clock)


# ============================================================================
# Admin
# ============================================================================


@router.get("/admin", response_model=SubscriptionListResponse)
async def list_subscriptions(
    db: DbSession,
    clock: RequestClock,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    plan: str | None = None,
) -> SubscriptionListResponse:
    subscriptions, total = await SubscriptionService(db, clock).list_subscriptions(
        status=status_filter,
        plan=plan,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return SubscriptionListResponse(
        items=[_subscription_response(subscription, clock) for subscription in subscriptions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.patch(
    "/admin/{subscription_id}",
    response_model=SubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def admin_update_subscription(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    subscription_id: Annotated[UUID, Path()],
    payload: SubscriptionAdminUpdate,
) -> SubscriptionResponse:
    """Apply an allow-listed override; unknown fields are rejected."""
    service = SubscriptionService(db, clock, emitter)
    subscription = await service.admin_update(subscription_id, payload)
    await db.commit()
    return _subscription_response(subscription, clock)


@router.post(
    "/admin/{subscription_id}/suspend",
    response_model=SubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def suspend_subscription(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    subscription_id: Annotated[UUID, Path()],
    payload: SuspendSubscriptionRequest,
) -> SubscriptionResponse:
    service = SubscriptionService(db, clock, emitter)
    subscription = await service.suspend(subscription_id, payload.reason)
    await db.commit()
    return _subscription_response(subscription, clock)


@router.post(
    "/admin/{subscription_id}/unsuspend",
    response_model=SubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def unsuspend_subscription(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    subscription_id: Annotated[UUID, Path()],
) -> SubscriptionResponse:
    subscription = await SubscriptionService(db, clock, emitter).unsuspend(subscription_id)
    await db.commit()
    return _subscription_response(subscription, clock)


@router.post("/admin/expire", response_model=ExpireSweepResponse)
async def expire_subscriptions(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
) -> ExpireSweepResponse:
    """Expire ended trials and lapsed cancellations."""
    expired = await SubscriptionService(db, clock, emitter).expire_sweep()
    await db.commit()
    return ExpireSweepResponse(expired=[subscription.subscription_id for subscription in expired])
