"""API routes."""

from workforce_payroll.api.routes.companies import router as companies_router
from workforce_payroll.api.routes.health import router as health_router
from workforce_payroll.api.routes.payroll import router as payroll_router
from workforce_payroll.api.routes.subscriptions import router as subscriptions_router
from workforce_payroll.api.routes.time_logs import router as time_logs_router

__all__ = [
    "companies_router",
    "health_router",
    "payroll_router",
    "subscriptions_router",
    "time_logs_router",
]
