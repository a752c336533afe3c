"""Payroll services.

The cycle scheduler lives in ``workforce_payroll.services.scheduler``; it is
not re-exported here because it depends on the calculation engine, which in
turn uses the commit service.
"""

from workforce_payroll.services.commit_service import CommitResult, CommitService, PaymentBucket
from workforce_payroll.services.company_service import CompanyService
from workforce_payroll.services.payment_service import PaymentService, PayrollSummary
from workforce_payroll.services.state_machine import (
    PaymentStateMachine,
    PaymentStatus,
    TimeLogStateMachine,
    TimeLogStatus,
)
from workforce_payroll.services.time_log_service import TimeLogService

__all__ = [
    "CommitResult",
    "CommitService",
    "PaymentBucket",
    "CompanyService",
    "PaymentService",
    "PayrollSummary",
    "PaymentStateMachine",
    "PaymentStatus",
    "TimeLogStateMachine",
    "TimeLogStatus",
    "TimeLogService",
]
