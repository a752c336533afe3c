"""Company onboarding, suspension and employee roster."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.clock import Clock, SystemClock
from workforce_payroll.errors import InvalidStateError, NotFoundError
from workforce_payroll.events import EventEmitter, get_emitter
from workforce_payroll.models import PAYMENT_CYCLES, Company, Employee, JobRole
from workforce_payroll.subscriptions.entitlement import EntitlementService
from workforce_payroll.subscriptions.lifecycle import (
    COMPANY_SUSPENSION_REASON,
    DEFAULT_PLAN,
    SubscriptionService,
)

logger = logging.getLogger(__name__)


class CompanyService:
    """Tenant-level operations that touch the company's subscription."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.emitter = emitter or get_emitter()
        self.subscriptions = SubscriptionService(session, self.clock, self.emitter)
        self.entitlements = EntitlementService(session, self.clock)

    async def get(self, company_id: UUID) -> Company:
        company = await self.session.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")
        return company

    async def create_company(
        self,
        name: str,
        payment_cycle: str = "monthly",
        bonus_rate_multiplier: Decimal = Decimal("1.5"),
        max_daily_hours: Decimal = Decimal("8"),
        employer_name: str | None = None,
        plan_id: str = DEFAULT_PLAN,
    ) -> Company:
        """Onboard a company together with its subscription."""
        if payment_cycle not in PAYMENT_CYCLES:
            raise InvalidStateError(
                f"Invalid payment cycle '{payment_cycle}'", code="INVALID_PAYMENT_CYCLE"
            )

        company = Company(
            name=name,
            employer_name=employer_name,
            payment_cycle=payment_cycle,
            bonus_rate_multiplier=Decimal(bonus_rate_multiplier),
            max_daily_hours=Decimal(max_daily_hours),
        )
        self.session.add(company)
        await self.session.flush()

        await self.subscriptions.create(company.company_id, plan_id)
        logger.info("Onboarded company %s (%s)", company.company_id, name)
        return company

    async def set_suspended(
        self, company_id: UUID, suspend: bool, reason: str | None = None
    ) -> Company:
        """Suspend or restore a company and cascade onto its subscription.

        Restoring the company only lifts a subscription suspension that the
        company cascade applied; an admin suspension stays in place.
        """
        company = await self.get(company_id)

        if suspend:
            company.verification_status = "suspended"
            company.is_active = False
            await self.session.flush()
            await self.subscriptions.suspend_for_company(
                company_id, reason or COMPANY_SUSPENSION_REASON
            )
            logger.info("Company %s suspended", company_id)
        else:
            company.verification_status = "verified"
            company.is_active = True
            await self.session.flush()
            await self.subscriptions.restore_for_company(company_id)
            logger.info("Company %s restored", company_id)

        return company

    async def add_employee(
        self,
        company_id: UUID,
        name: str,
        hourly_rate: Decimal = Decimal("0"),
        job_role_id: UUID | None = None,
        email: str | None = None,
    ) -> Employee:
        """Add an employee within the plan's employee limit."""
        await self.get(company_id)
        if job_role_id is not None:
            role = await self.session.get(JobRole, job_role_id)
            if role is None or role.company_id != company_id:
                raise NotFoundError("Job role not found", code="JOB_ROLE_NOT_FOUND")

        subscription = await self.subscriptions.get_for_company(company_id)
        self.entitlements.require_valid(subscription)
        await self.entitlements.require_employee_capacity(subscription)

        employee = Employee(
            company_id=company_id,
            name=name,
            email=email,
            hourly_rate=Decimal(hourly_rate),
            job_role_id=job_role_id,
        )
        self.session.add(employee)
        await self.session.flush()

        await self.entitlements.update_usage_stats(subscription)
        return employee

    async def deactivate_employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found", code="EMPLOYEE_NOT_FOUND")
        employee.is_active = False
        await self.session.flush()

        subscription = await self.subscriptions.find_for_company(employee.company_id)
        if subscription is not None:
            await self.entitlements.update_usage_stats(subscription)
        return employee

    async def add_job_role(
        self,
        company_id: UUID,
        name: str,
        base_rate: Decimal | None = None,
        overtime_rate: Decimal | None = None,
        role_bonus: Decimal | None = None,
    ) -> JobRole:
        await self.get(company_id)
        role = JobRole(
            company_id=company_id,
            name=name,
            base_rate=base_rate,
            overtime_rate=overtime_rate,
            role_bonus=role_bonus,
        )
        self.session.add(role)
        await self.session.flush()
        return role

    async def list_employees(
        self, company_id: UUID, include_inactive: bool = False
    ) -> list[Employee]:
        query = select(Employee).where(Employee.company_id == company_id)
        if not include_inactive:
            query = query.where(Employee.is_active.is_(True))
        result = await self.session.execute(query.order_by(Employee.name))
        return list(result.scalars().all())
