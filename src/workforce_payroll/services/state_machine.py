"""Payment and time log state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from workforce_payroll.errors import InvalidTransitionError


class TimeLogStatus(str, Enum):
    """Time log status values."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


class PaymentStatus(str, Enum):
    """Payment status values."""

    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TimeLogStateMachine:
    """State machine for time log status transitions.

    Allowed transitions:
    - pending → approved (employer approval)
    - approved → paid (claimed by a payment)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TimeLogStatus.PENDING: [TimeLogStatus.APPROVED],
        TimeLogStatus.APPROVED: [TimeLogStatus.PAID],
        TimeLogStatus.PAID: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)


class PaymentStateMachine:
    """State machine for payment status transitions.

    Allowed transitions:
    - pending → approved
    - approved → processing
    - approved → failed (processor rejected the request)
    - processing → completed
    - processing → failed
    - failed → approved (retry)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.PENDING: [PaymentStatus.APPROVED],
        PaymentStatus.APPROVED: [PaymentStatus.PROCESSING, PaymentStatus.FAILED],
        PaymentStatus.PROCESSING: [PaymentStatus.COMPLETED, PaymentStatus.FAILED],
        PaymentStatus.FAILED: [PaymentStatus.APPROVED],
        PaymentStatus.COMPLETED: [],  # Terminal state
    }

    # Statuses where a payroll run may still correct the amount
    CORRECTION_ALLOWED = {PaymentStatus.PENDING}

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
    def can_correct(cls, status: str) -> bool:
        """Check if a payroll run may overwrite the payment's amount."""
        return status in cls.CORRECTION_ALLOWED

    @classmethod
    def is_retry(cls, from_status: str, to_status: str) -> bool:
        return from_status == PaymentStatus.FAILED and to_status == PaymentStatus.APPROVED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
