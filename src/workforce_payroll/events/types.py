"""Domain event types for payroll and subscription operations.

All events are immutable frozen dataclasses carrying ``EventMetadata`` and a
typed payload. They are emitted after the state change they describe has been
flushed to the store.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from workforce_payroll.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYMENT = "payment"
    PAYROLL = "payroll"
    SUBSCRIPTION = "subscription"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    company_id: UUID
    correlation_id: UUID  # Links related events
    actor_type: str  # 'user', 'admin', 'system', 'scheduler'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        company_id: UUID,
        correlation_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "payroll",
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or utcnow(),
            company_id=company_id,
            correlation_id=correlation_id or uuid4(),
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payment Events
# =============================================================================


@dataclass(frozen=True)
class PaymentCreated(DomainEvent):
    """A pending payment was created by a payroll run."""

    payment_id: UUID
    employee_id: UUID
    period_start: datetime
    period_end: datetime
    amount: Decimal
    time_log_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentCorrected(DomainEvent):
    """A pending payment was recomputed to cover additional time logs."""

    payment_id: UUID
    employee_id: UUID
    previous_amount: Decimal
    amount: Decimal
    time_log_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentStatusChanged(DomainEvent):
    """A payment moved through the processing workflow."""

    payment_id: UUID
    employee_id: UUID
    from_status: str
    to_status: str
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class PayrollRunCompleted(DomainEvent):
    """A payroll computation finished for a company and window."""

    period_start: datetime
    period_end: datetime
    total_employees: int
    employees_with_payments: int
    created_count: int
    updated_count: int
    skipped_count: int
    total_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Subscription Events
# =============================================================================


@dataclass(frozen=True)
class SubscriptionPlanChanged(DomainEvent):
    """A subscription moved to another plan or billing cycle."""

    subscription_id: UUID
    from_plan: str
    to_plan: str
    billing_cycle: str
    price_amount: Decimal
    direction: str  # 'upgrade', 'downgrade', 'change'

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionCancelled(DomainEvent):
    """A subscription was cancelled; access continues until period end."""

    subscription_id: UUID
    cancelled_at: datetime
    access_until: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionReactivated(DomainEvent):
    """A cancelled or expired subscription was made active again."""

    subscription_id: UUID
    from_status: str
    period_end: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionSuspended(DomainEvent):
    """A subscription was suspended by an admin or by company suspension."""

    subscription_id: UUID
    reason: str
    source: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionUnsuspended(DomainEvent):
    """A suspension was lifted."""

    subscription_id: UUID
    restored_status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionExpired(DomainEvent):
    """A trial or cancelled subscription ran past its end date."""

    subscription_id: UUID
    from_status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION
