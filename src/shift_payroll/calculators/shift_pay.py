"""Shift pay resolution against penalty and overtime time frames.

The shift is cut into one-minute cells on the pay guide's local clock. Each
worked cell is matched against the active rules and tagged regular, penalty,
overtime or penalty+overtime; adjacent cells with the same tag and multiplier
are then coalesced into ResolvedInterval runs, which is what the breakdown and
the tests look at.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from shift_payroll.calculators.money import round_cents
from shift_payroll.calculators.timezone_resolver import TimeZoneResolver, ensure_utc
from shift_payroll.calculators.types import (
    IntervalKind,
    MultiplierPolicy,
    OvertimeRule,
    PayBreakdown,
    PayGuideTerms,
    PenaltyRule,
    ResolvedInterval,
    RuleSet,
    ShiftSpan,
)

ONE_MINUTE = timedelta(minutes=1)
MINUTES_PER_DAY = 24 * 60
FIRST_TIER_MINUTES = 3 * 60
HOLIDAY = "holiday"
ONE = Decimal("1")


class InvalidShiftError(Exception):
    """Raised when a shift's times or breaks are inconsistent."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid shift: {reason}")


@dataclass(frozen=True)
class RuleWindow:
    """Local time-of-day window in minutes, half-open [start, end)."""

    start: int
    end: int

    @property
    def wraps(self) -> bool:
        return self.end <= self.start

    @classmethod
    def parse(cls, start_time: str | None, end_time: str | None) -> RuleWindow:
        start = _parse_hhmm(start_time) if start_time else 0
        end = _parse_hhmm(end_time) if end_time else MINUTES_PER_DAY
        if start == MINUTES_PER_DAY:
            raise ValueError(f"Window cannot start at 24:00: {start_time!r}")
        return cls(start=start, end=end)


def _parse_hhmm(value: str) -> int:
    try:
        hours_text, minutes_text = value.split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except ValueError:
        raise ValueError(f"Invalid HH:MM time: {value!r}") from None
    if hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid HH:MM time: {value!r}")
    return hours * 60 + minutes


@dataclass
class _Cell:
    start: datetime
    minute: int = 0
    today: int | str = 0
    yesterday: int | str = 0
    penalty: PenaltyRule | None = None
    overtime: OvertimeRule | None = None
    overtime_tier: int = 0

    @property
    def penalty_multiplier(self) -> Decimal:
        return self.penalty.multiplier if self.penalty else ONE


class ShiftPayResolver:
    """Computes regular, penalty and overtime pay for a shift.

    Pure: depends only on the pay guide terms, the rule set and the shift.
    Penalty rules compete by (priority, rule_id), lowest first. Overtime
    applies to worked minutes past maximum_shift_hours, on the first tier for
    three hours and the second tier after that, and only where an active
    overtime rule's window matches. A minute that is both penalty and overtime
    combines multipliers according to the policy.
    """

    def __init__(
        self,
        terms: PayGuideTerms,
        policy: MultiplierPolicy = MultiplierPolicy.MULTIPLICATIVE,
        resolver: TimeZoneResolver | None = None,
    ):
        self.terms = terms
        self.policy = MultiplierPolicy(policy)
        self.resolver = resolver or TimeZoneResolver()

    def resolve(self, shift: ShiftSpan, rules: RuleSet | None = None) -> PayBreakdown:
        rules = rules or RuleSet()
        start = ensure_utc(shift.start)
        end = ensure_utc(shift.end)
        self._validate(shift, start, end)
        end = self._apply_minimum_shift(start, end)

        penalties = _active_in_order(rules.penalty_rules)
        overtimes = _active_in_order(rules.overtime_rules)
        windows = {
            rule.rule_id: RuleWindow.parse(rule.start_time, rule.end_time)
            for rule in (*penalties, *overtimes)
        }
        holidays = {h.holiday_date for h in rules.public_holidays if h.is_active}

        cells = self._worked_cells(shift, start, end)
        for cell in cells:
            local = self.resolver.to_local(cell.start, self.terms.timezone)
            cell.minute = local.hour * 60 + local.minute
            cell.today = _day_type(local.date(), holidays)
            cell.yesterday = _day_type(local.date() - timedelta(days=1), holidays)
            cell.penalty = next((r for r in penalties if _matches(r, windows[r.rule_id], cell)), None)

        cells = self._deduct_unstructured_break(shift, cells)

        threshold = int(self.terms.maximum_shift_hours * 60)
        for ordinal, cell in enumerate(cells, start=1):
            if ordinal <= threshold:
                continue
            cell.overtime = next((r for r in overtimes if _matches(r, windows[r.rule_id], cell)), None)
            if cell.overtime is not None:
                cell.overtime_tier = 1 if ordinal - threshold <= FIRST_TIER_MINUTES else 2

        return self._build_breakdown(cells)

    def _validate(self, shift: ShiftSpan, start: datetime, end: datetime) -> None:
        if end <= start:
            raise InvalidShiftError("end time must be after start time")
        span_minutes = int((end - start).total_seconds() // 60)
        if shift.break_minutes < 0:
            raise InvalidShiftError("break minutes cannot be negative")
        if shift.break_minutes > span_minutes:
            raise InvalidShiftError("break is longer than the shift")
        for period in shift.break_periods:
            b_start, b_end = ensure_utc(period.start), ensure_utc(period.end)
            if b_end <= b_start:
                raise InvalidShiftError("break end time must be after break start time")
            if b_start < start or b_end > end:
                raise InvalidShiftError("break periods must be within shift duration")

    def _apply_minimum_shift(self, start: datetime, end: datetime) -> datetime:
        minimum = self.terms.minimum_shift_hours
        if not minimum:
            return end
        minimum_end = start + timedelta(minutes=int(minimum * 60))
        return max(end, minimum_end)

    def _worked_cells(self, shift: ShiftSpan, start: datetime, end: datetime) -> list[_Cell]:
        breaks = [(ensure_utc(b.start), ensure_utc(b.end)) for b in shift.break_periods]
        total_minutes = int((end - start).total_seconds() // 60)
        cells = []
        for i in range(total_minutes):
            cell_start = start + i * ONE_MINUTE
            if any(b_start <= cell_start < b_end for b_start, b_end in breaks):
                continue
            cells.append(_Cell(start=cell_start))
        return cells

    def _deduct_unstructured_break(self, shift: ShiftSpan, cells: list[_Cell]) -> list[_Cell]:
        """Remove break_minutes cells when no explicit break periods are given.

        Unclaimed (regular) minutes go first, then the lowest-multiplier penalty
        minutes; within a multiplier the latest minutes go first.
        """
        if shift.break_periods or shift.break_minutes <= 0:
            return cells
        order = sorted(
            range(len(cells)),
            key=lambda i: (cells[i].penalty is not None, cells[i].penalty_multiplier, -i),
        )
        dropped = set(order[: shift.break_minutes])
        return [cell for i, cell in enumerate(cells) if i not in dropped]

    def _combined(self, cell: _Cell) -> tuple[IntervalKind, Decimal]:
        overtime_multiplier = None
        if cell.overtime is not None:
            overtime_multiplier = (
                cell.overtime.first_tier_multiplier
                if cell.overtime_tier == 1
                else cell.overtime.second_tier_multiplier
            )

        if cell.penalty is not None and overtime_multiplier is not None:
            if self.policy is MultiplierPolicy.HIGHEST:
                multiplier = max(cell.penalty.multiplier, overtime_multiplier)
            else:
                multiplier = cell.penalty.multiplier * overtime_multiplier
            return IntervalKind.PENALTY_OVERTIME, multiplier
        if overtime_multiplier is not None:
            return IntervalKind.OVERTIME, overtime_multiplier
        if cell.penalty is not None:
            return IntervalKind.PENALTY, cell.penalty.multiplier
        return IntervalKind.REGULAR, ONE

    def _build_breakdown(self, cells: list[_Cell]) -> PayBreakdown:
        intervals: list[ResolvedInterval] = []
        penalty_minutes: dict[str, int] = {}
        overtime_minutes: dict[str, int] = {}
        regular_minutes = 0
        overtime_total = 0
        weighted = {
            IntervalKind.REGULAR: Decimal("0"),
            IntervalKind.PENALTY: Decimal("0"),
            IntervalKind.OVERTIME: Decimal("0"),
        }

        for cell in cells:
            kind, multiplier = self._combined(cell)
            penalty_id = cell.penalty.rule_id if cell.penalty else None
            overtime_id = cell.overtime.rule_id if cell.overtime else None

            if kind is IntervalKind.REGULAR:
                regular_minutes += 1
                weighted[IntervalKind.REGULAR] += multiplier
            elif kind is IntervalKind.PENALTY:
                weighted[IntervalKind.PENALTY] += multiplier
            else:
                overtime_total += 1
                weighted[IntervalKind.OVERTIME] += multiplier
            if penalty_id is not None:
                penalty_minutes[penalty_id] = penalty_minutes.get(penalty_id, 0) + 1
            if overtime_id is not None:
                overtime_minutes[overtime_id] = overtime_minutes.get(overtime_id, 0) + 1

            last = intervals[-1] if intervals else None
            if (
                last is not None
                and last.end == cell.start
                and last.kind is kind
                and last.multiplier == multiplier
                and last.penalty_rule_id == penalty_id
                and last.overtime_rule_id == overtime_id
            ):
                intervals[-1] = ResolvedInterval(
                    start=last.start,
                    end=cell.start + ONE_MINUTE,
                    kind=kind,
                    multiplier=multiplier,
                    minutes=last.minutes + 1,
                    penalty_rule_id=penalty_id,
                    overtime_rule_id=overtime_id,
                )
            else:
                intervals.append(
                    ResolvedInterval(
                        start=cell.start,
                        end=cell.start + ONE_MINUTE,
                        kind=kind,
                        multiplier=multiplier,
                        minutes=1,
                        penalty_rule_id=penalty_id,
                        overtime_rule_id=overtime_id,
                    )
                )

        base_rate = self.terms.base_rate
        regular_pay = round_cents(base_rate * weighted[IntervalKind.REGULAR] / 60)
        penalty_pay = round_cents(base_rate * weighted[IntervalKind.PENALTY] / 60)
        overtime_pay = round_cents(base_rate * weighted[IntervalKind.OVERTIME] / 60)
        # Gross is rounded once over every minute, so it can differ by a cent
        # from the sum of the rounded components.
        gross_pay = round_cents(base_rate * sum(weighted.values()) / 60)

        return PayBreakdown(
            worked_hours=_hours(len(cells)),
            regular_hours=_hours(regular_minutes),
            overtime_hours=_hours(overtime_total),
            penalty_hours_by_rule={k: _hours(v) for k, v in penalty_minutes.items()},
            overtime_hours_by_rule={k: _hours(v) for k, v in overtime_minutes.items()},
            regular_pay=regular_pay,
            penalty_pay=penalty_pay,
            overtime_pay=overtime_pay,
            gross_pay=gross_pay,
            intervals=intervals,
        )


def _active_in_order(rules: Iterable[PenaltyRule | OvertimeRule]) -> list:
    return sorted((r for r in rules if r.is_active), key=lambda r: (r.priority, str(r.rule_id)))


def _day_type(day: date, holidays: set[date]) -> int | str:
    """HOLIDAY for an active public holiday, else 0=Sunday..6=Saturday."""
    if day in holidays:
        return HOLIDAY
    return day.isoweekday() % 7


def _day_matches(rule: PenaltyRule | OvertimeRule, day_type: int | str) -> bool:
    if rule.is_public_holiday:
        return day_type == HOLIDAY
    if rule.days_of_week:
        return day_type != HOLIDAY and day_type in rule.days_of_week
    return True


def _matches(rule: PenaltyRule | OvertimeRule, window: RuleWindow, cell: _Cell) -> bool:
    # A wrapping window belongs to the day it starts on.
    if window.wraps:
        return (cell.minute >= window.start and _day_matches(rule, cell.today)) or (
            cell.minute < window.end and _day_matches(rule, cell.yesterday)
        )
    return window.start <= cell.minute < window.end and _day_matches(rule, cell.today)


def _hours(minutes: int) -> Decimal:
    return (Decimal(minutes) / 60).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def resolve_shift_pay(
    shift: ShiftSpan,
    terms: PayGuideTerms,
    rules: RuleSet | None = None,
    policy: MultiplierPolicy = MultiplierPolicy.MULTIPLICATIVE,
) -> PayBreakdown:
    """Module-level shortcut for ShiftPayResolver(terms, policy).resolve."""
    return ShiftPayResolver(terms, policy).resolve(shift, rules)
