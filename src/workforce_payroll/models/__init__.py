"""ORM models."""

from workforce_payroll.models.base import Base, TimestampMixin, utcnow
from workforce_payroll.models.company import PAYMENT_CYCLES, Company
from workforce_payroll.models.employee import Employee, JobRole
from workforce_payroll.models.payroll import Payment, PaymentTimeLog, TimeLog
from workforce_payroll.models.subscription import Subscription

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "PAYMENT_CYCLES",
    "Company",
    "Employee",
    "JobRole",
    "Payment",
    "PaymentTimeLog",
    "TimeLog",
    "Subscription",
]
