"""HTTP adapter over the payroll and subscription services."""
