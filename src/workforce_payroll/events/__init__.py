"""Domain events and notification dispatch."""

from workforce_payroll.events.emitter import (
    EventBatch,
    EventEmitter,
    LoggingNotificationSink,
    get_emitter,
)
from workforce_payroll.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    PaymentCorrected,
    PaymentCreated,
    PaymentStatusChanged,
    PayrollRunCompleted,
    SubscriptionCancelled,
    SubscriptionExpired,
    SubscriptionPlanChanged,
    SubscriptionReactivated,
    SubscriptionSuspended,
    SubscriptionUnsuspended,
)

__all__ = [
    "EventBatch",
    "EventEmitter",
    "LoggingNotificationSink",
    "get_emitter",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "PaymentCorrected",
    "PaymentCreated",
    "PaymentStatusChanged",
    "PayrollRunCompleted",
    "SubscriptionCancelled",
    "SubscriptionExpired",
    "SubscriptionPlanChanged",
    "SubscriptionReactivated",
    "SubscriptionSuspended",
    "SubscriptionUnsuspended",
]
