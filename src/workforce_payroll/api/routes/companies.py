"""Company onboarding, suspension and roster endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from workforce_payroll.api.dependencies import DbSession, Emitter, RequestClock
from workforce_payroll.api.schemas import (
    CompanyCreate,
    CompanyResponse,
    EmployeeCreate,
    EmployeeResponse,
    ErrorResponse,
    JobRoleCreate,
    JobRoleResponse,
    SuspensionRequest,
)
from workforce_payroll.services.company_service import CompanyService

router = APIRouter(prefix="/companies", tags=["companies"])


@router.post(
    "",
    response_model=CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_company(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    payload: CompanyCreate,
) -> CompanyResponse:
    """Onboard a company and start its subscription."""
    service = CompanyService(db, clock, emitter)
    company = await service.create_company(
        name=payload.name,
        employer_name=payload.employer_name,
        payment_cycle=payload.payment_cycle,
        bonus_rate_multiplier=payload.bonus_rate_multiplier,
        max_daily_hours=payload.max_daily_hours,
        plan_id=payload.plan,
    )
    await db.commit()
    return CompanyResponse.model_validate(company)


@router.get(
    "/{company_id}",
    response_model=CompanyResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_company(
    db: DbSession,
    company_id: Annotated[UUID, Path()],
) -> CompanyResponse:
    company = await CompanyService(db).get(company_id)
    return CompanyResponse.model_validate(company)


@router.post(
    "/{company_id}/suspension",
    response_model=CompanyResponse,
    responses={404: {"model": ErrorResponse}},
)
async def set_company_suspension(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    company_id: Annotated[UUID, Path()],
    payload: SuspensionRequest,
) -> CompanyResponse:
    """Suspend or restore a company; cascades onto its subscription."""
    service = CompanyService(db, clock, emitter)
    company = await service.set_suspended(company_id, payload.suspend, payload.reason)
    await db.commit()
    return CompanyResponse.model_validate(company)


@router.post(
    "/{company_id}/job-roles",
    response_model=JobRoleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
)
async def create_job_role(
    db: DbSession,
    company_id: Annotated[UUID, Path()],
    payload: JobRoleCreate,
) -> JobRoleResponse:
    role = await CompanyService(db).add_job_role(
        company_id,
        payload.name,
        base_rate=payload.base_rate,
        overtime_rate=payload.overtime_rate,
        role_bonus=payload.role_bonus,
    )
    await db.commit()
    return JobRoleResponse.model_validate(role)


@router.post(
    "/{company_id}/employees",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def add_employee(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    company_id: Annotated[UUID, Path()],
    payload: EmployeeCreate,
) -> EmployeeResponse:
    """Add an employee within the plan's employee limit."""
    service = CompanyService(db, clock, emitter)
    employee = await service.add_employee(
        company_id,
        payload.name,
        hourly_rate=payload.hourly_rate,
        job_role_id=payload.job_role_id,
        email=payload.email,
    )
    await db.commit()
    return EmployeeResponse.model_validate(employee)


@router.get(
    "/{company_id}/employees",
    response_model=list[EmployeeResponse],
)
async def list_employees(
    db: DbSession,
    company_id: Annotated[UUID, Path()],
    include_inactive: Annotated[bool, Query()] = False,
) -> list[EmployeeResponse]:
    employees = await CompanyService(db).list_employees(company_id, include_inactive)
    return [EmployeeResponse.model_validate(employee) for employee in employees]


@router.post(
    "/employees/{employee_id}/deactivate",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_employee(
    db: DbSession,
    clock: RequestClock,
    emitter: Emitter,
    employee_id: Annotated[UUID, Path()],
) -> EmployeeResponse:
    employee = await CompanyService(db, clock, emitter).deactivate_employee(employee_id)
    await db.commit()
    return EmployeeResponse.model_validate(employee)
