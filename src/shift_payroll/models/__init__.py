"""SQLAlchemy ORM models for the shift payroll schema."""

from shift_payroll.models.base import Base, Money, TimestampMixin, UTCDateTime
from shift_payroll.models.pay_guide import OvertimeTimeFrame, PayGuide, PenaltyTimeFrame, PublicHoliday
from shift_payroll.models.pay_period import (
    BreakPeriod,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodExtraTemplate,
    Shift,
)
from shift_payroll.models.tax import LevyRate, TaxCoefficient
from shift_payroll.models.user import AppUser, TaxSettings

__all__ = [
    # Base
    "Base",
    "Money",
    "TimestampMixin",
    "UTCDateTime",
    # Users
    "AppUser",
    "TaxSettings",
    # Pay guides
    "PayGuide",
    "PenaltyTimeFrame",
    "OvertimeTimeFrame",
    "PublicHoliday",
    # Shifts & periods
    "Shift",
    "BreakPeriod",
    "PayPeriod",
    "PayPeriodExtra",
    "PayPeriodExtraTemplate",
    # Tax tables
    "TaxCoefficient",
    "LevyRate",
]
