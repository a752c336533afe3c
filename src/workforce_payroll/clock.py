"""Injectable time source.

All timestamps handled by the engine are naive UTC, matching what the store
returns for ``DateTime`` columns on every supported backend.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Protocol for anything that can tell the current time."""

    def now(self) -> datetime:
        """Return the current naive-UTC time."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to a given instant; can be advanced manually."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def start_of_month(value: datetime) -> datetime:
    """First instant of the calendar month containing ``value``."""
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
