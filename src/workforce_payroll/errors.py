"""Typed, caller-facing error conditions.

Every error carries a stable machine-readable ``code`` and the HTTP status an
adapter should render it with. Only ``StoreUnavailableError`` represents a
server-side fault; everything else is a recoverable 4xx-style outcome.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for engine errors."""

    code = "PAYROLL_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render as an API error body."""
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body.update(self.details)
        return body


class NotFoundError(PayrollError):
    """Company, employee, subscription, payment or time log is missing."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidPlanError(PayrollError):
    """Unknown plan id or an illegal plan change."""

    code = "INVALID_PLAN"
    status_code = 400


class LimitExceededError(PayrollError):
    """A plan limit blocks the requested operation."""

    code = "LIMIT_EXCEEDED"
    status_code = 403


class InvalidStateError(PayrollError):
    """Operation is not legal in the entity's current state."""

    code = "INVALID_STATE"
    status_code = 400


class InvalidTransitionError(InvalidStateError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StoreUnavailableError(PayrollError):
    """The backing store cannot be reached."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
