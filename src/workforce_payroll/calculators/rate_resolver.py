"""Effective pay rate resolution."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.calculators.types import ZERO, EffectiveRates, RateSource
from workforce_payroll.errors import NotFoundError
from workforce_payroll.models import Employee, JobRole


class RateResolver:
    """Resolves the rates applied to an employee's hours.

    Rate selection:
    1. If the employee has a job role with a default rate structure, use the
       role's base/overtime/role_bonus. A missing base falls back to the
       employee's hourly rate; missing overtime and role bonus are zero.
    2. Otherwise the employee's hourly rate is the base and overtime and
       role bonus are zero.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def resolve(employee: Employee, job_role: JobRole | None) -> EffectiveRates:
        """Resolve rates from already-loaded rows."""
        hourly_rate = Decimal(employee.hourly_rate or ZERO)

        if job_role is None or not job_role.has_default_rates:
            return EffectiveRates(base=hourly_rate, source=RateSource.EMPLOYEE)

        return EffectiveRates(
            base=Decimal(job_role.base_rate) if job_role.base_rate is not None else hourly_rate,
            overtime=Decimal(job_role.overtime_rate or ZERO),
            role_bonus=Decimal(job_role.role_bonus or ZERO),
            source=RateSource.JOB_ROLE,
        )

    async def resolve_for_employee(self, employee: Employee) -> EffectiveRates:
        """Resolve rates, loading the job role if the employee has one."""
        job_role = None
        if employee.job_role_id is not None:
            job_role = await self.session.get(JobRole, employee.job_role_id)
        return self.resolve(employee, job_role)

    async def resolve_for_employee_id(self, employee_id: UUID) -> EffectiveRates:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        return await self.resolve_for_employee(employee)
