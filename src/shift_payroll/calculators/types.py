"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class Cadence(str, Enum):
    """Pay period length policy."""

    WEEKLY = "WEEKLY"
    FORTNIGHTLY = "FORTNIGHTLY"
    MONTHLY = "MONTHLY"


class MultiplierPolicy(str, Enum):
    """How a penalty and an overtime multiplier combine on the same minute."""

    MULTIPLICATIVE = "multiplicative"
    HIGHEST = "highest"


class TaxRounding(str, Enum):
    """Rounding applied to a withholding amount."""

    CENT = "cent"  # nearest cent, half up
    DOLLAR = "dollar"  # nearest dollar, half up


class IntervalKind(str, Enum):
    """Classification of a resolved slice of a shift."""

    REGULAR = "regular"
    OVERTIME = "overtime"
    PENALTY = "penalty"
    PENALTY_OVERTIME = "penalty+overtime"


@dataclass(frozen=True)
class PeriodBoundary:
    """Inclusive [start, end] of a pay period, both UTC instants."""

    start: datetime
    end: datetime


# ===== Shift pay inputs =====


@dataclass(frozen=True)
class BreakInterval:
    """An unpaid break inside a shift."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class ShiftSpan:
    """The time span of one shift as seen by the pay resolver."""

    start: datetime
    end: datetime
    break_minutes: int = 0
    break_periods: tuple[BreakInterval, ...] = ()
    shift_type: str = "ordinary"
    shift_id: str | None = None


@dataclass(frozen=True)
class PayGuideTerms:
    """Base rate and shift limits of a pay guide."""

    base_rate: Decimal
    timezone: str = "UTC"
    minimum_shift_hours: Decimal | None = None
    maximum_shift_hours: Decimal = Decimal("11")
    pay_guide_id: str | None = None


@dataclass(frozen=True)
class PenaltyRule:
    """Penalty time frame: a multiplier for a local time-of-day/day window.

    start_time/end_time are "HH:MM" local wall times, half-open; an end at or
    before the start wraps past midnight. days_of_week uses 0=Sunday..6=Saturday.
    """

    rule_id: str
    multiplier: Decimal
    name: str = ""
    start_time: str | None = None
    end_time: str | None = None
    days_of_week: frozenset[int] | None = None
    is_public_holiday: bool = False
    priority: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class OvertimeRule:
    """Overtime time frame: tiered multipliers for minutes past the threshold."""

    rule_id: str
    first_tier_multiplier: Decimal
    second_tier_multiplier: Decimal
    name: str = ""
    start_time: str | None = None
    end_time: str | None = None
    days_of_week: frozenset[int] | None = None
    is_public_holiday: bool = False
    priority: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class PublicHolidayDate:
    """A public holiday date for a pay guide."""

    holiday_date: date
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class RuleSet:
    """Active rules of one pay guide."""

    penalty_rules: tuple[PenaltyRule, ...] = ()
    overtime_rules: tuple[OvertimeRule, ...] = ()
    public_holidays: tuple[PublicHolidayDate, ...] = ()


# ===== Shift pay outputs =====


@dataclass(frozen=True)
class ResolvedInterval:
    """A maximal run of minutes sharing one classification and multiplier."""

    start: datetime
    end: datetime
    kind: IntervalKind
    multiplier: Decimal
    minutes: int
    penalty_rule_id: str | None = None
    overtime_rule_id: str | None = None


@dataclass
class PayBreakdown:
    """Pay breakdown of a single shift."""

    worked_hours: Decimal
    regular_hours: Decimal
    overtime_hours: Decimal
    penalty_hours_by_rule: dict[str, Decimal] = field(default_factory=dict)
    overtime_hours_by_rule: dict[str, Decimal] = field(default_factory=dict)
    regular_pay: Decimal = Decimal("0")
    penalty_pay: Decimal = Decimal("0")
    overtime_pay: Decimal = Decimal("0")
    gross_pay: Decimal = Decimal("0")
    intervals: list[ResolvedInterval] = field(default_factory=list)

    @property
    def penalty_hours(self) -> Decimal:
        return sum(self.penalty_hours_by_rule.values(), Decimal("0"))


# ===== Tax =====


@dataclass(frozen=True)
class TaxBracket:
    """Linear withholding segment: tax = earnings * A - B on [from, to)."""

    scale: str
    earnings_from: Decimal
    earnings_to: Decimal | None  # None = no upper limit
    coefficient_a: Decimal
    coefficient_b: Decimal

    def contains(self, earnings: Decimal) -> bool:
        return self.earnings_from <= earnings and (
            self.earnings_to is None or earnings < self.earnings_to
        )


@dataclass(frozen=True)
class TaxContext:
    """Scale and levy selection for one period's withholding."""

    scale: str
    has_levy: bool = False
    cadence: Cadence | None = None
    levy_scale: str | None = None


@dataclass(frozen=True)
class WithholdingBreakdown:
    """Income tax and levy parts of a withholding amount."""

    income_tax: Decimal
    levy: Decimal

    @property
    def total(self) -> Decimal:
        return self.income_tax + self.levy


# ===== Period aggregation =====


@dataclass(frozen=True)
class ExtraAmount:
    """An ad-hoc amount added to a pay period."""

    label: str
    amount: Decimal
    taxable: bool = True


@dataclass(frozen=True)
class PeriodTotals:
    """Aggregated totals of one pay period."""

    total_hours: Decimal
    shift_pay: Decimal
    extras_pay: Decimal
    gross_pay: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    levy: Decimal
    tax_withheld: Decimal
    net_pay: Decimal
