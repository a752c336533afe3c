"""Multi-tenant workforce payroll and subscription engine."""

__version__ = "1.0.0"
