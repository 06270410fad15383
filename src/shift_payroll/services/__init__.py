"""Stateful pay period services."""

from shift_payroll.services.locking_service import LockingService
from shift_payroll.services.state_machine import (
    InvalidTransitionError,
    PayPeriodStateMachine,
    PayPeriodStatus,
    PeriodLockedError,
)
from shift_payroll.services.store import (
    PayPeriodNotFoundError,
    PayrollStore,
    ShiftNotFoundError,
    SqlAlchemyPayrollStore,
    UserNotFoundError,
)
from shift_payroll.services.sync_service import PayPeriodSynchronizer, ReassignmentResult

__all__ = [
    "LockingService",
    "InvalidTransitionError",
    "PayPeriodStateMachine",
    "PayPeriodStatus",
    "PeriodLockedError",
    "PayPeriodNotFoundError",
    "PayrollStore",
    "ShiftNotFoundError",
    "SqlAlchemyPayrollStore",
    "UserNotFoundError",
    "PayPeriodSynchronizer",
    "ReassignmentResult",
]
