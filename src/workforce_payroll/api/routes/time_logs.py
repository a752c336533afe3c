"""Time log endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from workforce_payroll.api.dependencies import DbSession, RequestClock
from workforce_payroll.api.schemas import ClockInRequest, ErrorResponse, TimeLogResponse
from workforce_payroll.services.time_log_service import TimeLogService

router = APIRouter(prefix="/time-logs", tags=["time-logs"])


@router.post(
    "/clock-in",
    response_model=TimeLogResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def clock_in(
    db: DbSession,
    clock: RequestClock,
    payload: ClockInRequest,
) -> TimeLogResponse:
    log = await TimeLogService(db, clock).clock_in(payload.employee_id)
    await db.commit()
    return TimeLogResponse.model_validate(log)


@router.post(
    "/{time_log_id}/clock-out",
    response_model=TimeLogResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def clock_out(
    db: DbSession,
    clock: RequestClock,
    time_log_id: Annotated[UUID, Path()],
) -> TimeLogResponse:
    log = await TimeLogService(db, clock).clock_out(time_log_id)
    await db.commit()
    return TimeLogResponse.model_validate(log)


@router.post(
    "/{time_log_id}/approve",
    response_model=TimeLogResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def approve_time_log(
    db: DbSession,
    clock: RequestClock,
    time_log_id: Annotated[UUID, Path()],
) -> TimeLogResponse:
    log = await TimeLogService(db, clock).approve(time_log_id)
    await db.commit()
    return TimeLogResponse.model_validate(log)
