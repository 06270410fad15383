"""Pay period lifecycle with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import Any


class PayPeriodStatus(str, Enum):
    """Pay period status values."""

    OPEN = "open"
    VERIFIED = "verified"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PeriodLockedError(Exception):
    """Raised when a verified pay period would be mutated or recalculated."""

    def __init__(self, pay_period_id: Any, action: str | None = None):
        self.pay_period_id = pay_period_id
        self.action = action
        msg = f"Pay period {pay_period_id} is verified and locked"
        if action:
            msg += f"; cannot {action}"
        super().__init__(msg)


class PayPeriodStateMachine:
    """State machine for pay period status transitions.

    Allowed transitions:
    - open → verified
    - verified → open (reopen)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayPeriodStatus.OPEN: [PayPeriodStatus.VERIFIED],
        PayPeriodStatus.VERIFIED: [PayPeriodStatus.OPEN],
    }

    # Statuses where shifts, extras and totals may change
    MUTABLE = {PayPeriodStatus.OPEN}

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
    def can_modify(cls, status: str) -> bool:
        """Check if shifts and extras of a period in this status can change."""
        return status in cls.MUTABLE

    @classmethod
    def can_recalculate(cls, status: str) -> bool:
        """Check if totals may be recomputed without a forced override."""
        return status in cls.MUTABLE

    @classmethod
    def ensure_mutable(cls, pay_period_id: Any, status: str, action: str | None = None) -> None:
        """Raise PeriodLockedError unless the period is open."""
        if not cls.can_modify(status):
            raise PeriodLockedError(pay_period_id, action)

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (verified → open)."""
        return from_status == PayPeriodStatus.VERIFIED and to_status == PayPeriodStatus.OPEN

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
