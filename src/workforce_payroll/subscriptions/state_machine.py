"""Subscription state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from workforce_payroll.errors import InvalidTransitionError


class SubscriptionStatus(str, Enum):
    """Subscription status values."""

    TRIAL = "trial"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SuspensionSource(str, Enum):
    """Who suspended a subscription."""

    ADMIN = "admin"
    COMPANY = "company"


class SubscriptionStateMachine:
    """State machine for subscription status transitions.

    Allowed transitions:
    - trial → active (paid plan change)
    - trial|active → cancelled
    - trial|cancelled → expired (sweep)
    - cancelled|expired → active (reactivate)
    - any → suspended
    - suspended → active|cancelled|expired (unsuspend restores)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SubscriptionStatus.TRIAL: [
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.CANCELLED,
            SubscriptionStatus.EXPIRED,
            SubscriptionStatus.SUSPENDED,
        ],
        SubscriptionStatus.ACTIVE: [
            SubscriptionStatus.CANCELLED,
            SubscriptionStatus.SUSPENDED,
        ],
        SubscriptionStatus.CANCELLED: [
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.EXPIRED,
            SubscriptionStatus.SUSPENDED,
        ],
        SubscriptionStatus.EXPIRED: [
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.SUSPENDED,
        ],
        SubscriptionStatus.SUSPENDED: [
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.CANCELLED,
            SubscriptionStatus.EXPIRED,
        ],
    }

    # Statuses from which the plan may be changed
    PLAN_CHANGE_ALLOWED = {
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.ACTIVE,
    }

    CANCEL_ALLOWED = {
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.ACTIVE,
    }

    REACTIVATE_ALLOWED = {
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }

    # Statuses restored as-is when a suspension is lifted
    RESTORABLE_AFTER_SUSPENSION = {
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def can_change_plan(cls, status: str) -> bool:
        return status in cls.PLAN_CHANGE_ALLOWED

    @classmethod
    def can_cancel(cls, status: str) -> bool:
        return status in cls.CANCEL_ALLOWED

    @classmethod
    def can_reactivate(cls, status: str) -> bool:
        return status in cls.REACTIVATE_ALLOWED

    @classmethod
    def status_after_unsuspend(cls, status_before_suspension: str | None) -> str:
        """Status a subscription returns to when its suspension is lifted."""
        if status_before_suspension in cls.RESTORABLE_AFTER_SUSPENSION:
            return SubscriptionStatus(status_before_suspension).value
        return SubscriptionStatus.ACTIVE.value
