"""Employee and job role models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_payroll.models.base import Base, TimestampMixin


class JobRole(Base, TimestampMixin):
    """Job role carrying a company's default rate structure."""

    __tablename__ = "job_role"

    job_role_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    base_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    overtime_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    role_bonus: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="job_role_company_name_unique"),
    )

    @property
    def has_default_rates(self) -> bool:
        """Whether any part of the default rate structure is configured."""
        return any(
            value is not None
            for value in (self.base_rate, self.overtime_rate, self.role_bonus)
        )


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    hourly_rate: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    job_role_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("job_role.job_role_id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("employee_company_active_idx", "company_id", "is_active"),
    )

    # Relationships
    job_role: Mapped[JobRole | None] = relationship()
