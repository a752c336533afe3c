"""Payroll computation and payment workflow endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from workforce_payroll.api.dependencies import DbSession, Emitter, RequestClock
from workforce_payroll.api.schemas import (
    ComputePayrollRequest,
    ErrorResponse,
    PaymentFailureRequest,
    PaymentListResponse,
    PaymentPreviewRequest,
    PaymentPreviewResponse,
    PaymentResponse,
    PayrollRunResponse,
    PayrollSummaryResponse,
    RunCycleRequest,
    naive_utc,
)
from workforce_payroll.calculators.engine import PayrollEngine
from workforce_payroll.errors import InvalidStateError
from workforce_payroll.services.payment_service import PaymentService
from workforce_payroll.services.scheduler import PayrollCycleScheduler

router = APIRouter(prefix="/payroll", tags=["payroll"])


# ============================================================================
# Computation
# ============================================================================


@router.post(
    "/compute",
    response_model=PayrollRunResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def compute_payroll(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payload: ComputePayrollRequest,
) -> PayrollRunResponse:
    """Compute payments for approved, unpaid time logs in the window.

    Idempotent: repeating the request creates nothing new.
    """
    engine = PayrollEngine(db, clock, emitter)
    run = await engine.compute_payroll(
        payload.company_id,
        payload.period_start,
        payload.period_end,
        include_inactive=payload.include_inactive,
    )
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/run-cycle",
    response_model=PayrollRunResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def run_cycle(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payload: RunCycleRequest,
) -> PayrollRunResponse:
    """Run payroll for the company's billing cadence window."""
    scheduler = PayrollCycleScheduler(db, clock, emitter)
    run = await scheduler.run_cycle(payload.company_id)
    await db.commit()
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/preview",
    response_model=PaymentPreviewResponse | None,
    responses={404: {"model": ErrorResponse}},
)
async def preview_payment(
    db: DbSession,
    payload: PaymentPreviewRequest,
) -> PaymentPreviewResponse | None:
    """Pay for a set of approved logs without writing anything."""
    breakdown = await PayrollEngine(db).calculate_employee_payment(
        payload.employee_id, payload.time_log_ids
    )
    if breakdown is None:
        return None
    return PaymentPreviewResponse.model_validate(breakdown)


@router.get(
    "/summary",
    response_model=PayrollSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def payroll_summary(
    db: DbSession,
    company_id: Annotated[UUID, Query()],
    period_start: Annotated[datetime, Query()],
    period_end: Annotated[datetime, Query()],
) -> PayrollSummaryResponse:
    start, end = naive_utc(period_start), naive_utc(period_end)
    if start > end:
        raise InvalidStateError(
            "Period start must not be after period end", code="INVALID_PERIOD"
        )
    summary = await PaymentService(db).get_payroll_summary(company_id, start, end)
    return PayrollSummaryResponse.model_validate(summary)


# ============================================================================
# Payments
# ============================================================================


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    db: DbSession,
    company_id: Annotated[UUID, Query()],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
) -> PaymentListResponse:
    payments, total = await PaymentService(db).list_payments(
        company_id,
        status=status_filter,
        employee_id=employee_id,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(payment) for payment in payments],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/payments/{payment_id}/approve",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def approve_payment(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payment_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    payment = await PaymentService(db, clock, emitter).approve(payment_id)
    await db.commit()
    return PaymentResponse.model_validate(payment)


@router.post(
    "/payments/{payment_id}/processing",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def mark_payment_processing(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payment_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    payment = await PaymentService(db, clock, emitter).mark_processing(payment_id)
    await db.commit()
    return PaymentResponse.model_validate(payment)


@router.post(
    "/payments/{payment_id}/complete",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def mark_payment_completed(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payment_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    payment = await PaymentService(db, clock, emitter).mark_completed(payment_id)
    await db.commit()
    return PaymentResponse.model_validate(payment)


@router.post(
    "/payments/{payment_id}/fail",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def mark_payment_failed(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payment_id: Annotated[UUID, Path()],
    payload: PaymentFailureRequest,
) -> PaymentResponse:
    payment = await PaymentService(db, clock, emitter).mark_failed(payment_id, payload.reason)
    await db.commit()
    return PaymentResponse.model_validate(payment)


@router.post(
    "/payments/{payment_id}/retry",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def retry_payment(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payment_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    payment = await PaymentService(db, clock, emitter).retry(payment_id)
    await db.commit()
    return PaymentResponse.model_validate(payment)
