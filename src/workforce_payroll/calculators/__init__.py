"""Payroll calculation: rate resolution and pay types.

The engine lives in ``workforce_payroll.calculators.engine``; it is not
re-exported here because it depends on the services package, which in turn
uses these types.
"""

from workforce_payroll.calculators.rate_resolver import RateResolver
from workforce_payroll.calculators.types import (
    EffectiveRates,
    EmployeePayrollResult,
    PayBreakdown,
    PaymentOutcome,
    PayrollRunResult,
)

__all__ = [
    "RateResolver",
    "EffectiveRates",
    "EmployeePayrollResult",
    "PayBreakdown",
    "PaymentOutcome",
    "PayrollRunResult",
]
