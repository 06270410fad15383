"""Pytest fixtures for shift payroll tests."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from shift_payroll.calculators.tax_calculator import TaxWithholdingEngine
from shift_payroll.calculators.tax_defaults import default_coefficient_table, default_levy_table
from shift_payroll.calculators.types import (
    BreakInterval,
    OvertimeRule,
    PayGuideTerms,
    PenaltyRule,
    ShiftSpan,
)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def shift_span(
    start: datetime,
    end: datetime,
    break_minutes: int = 0,
    breaks: list[tuple[datetime, datetime]] | None = None,
) -> ShiftSpan:
    return ShiftSpan(
        start=start,
        end=end,
        break_minutes=break_minutes,
        break_periods=tuple(BreakInterval(s, e) for s, e in breaks or []),
    )


@pytest.fixture
def utc_terms() -> PayGuideTerms:
    """Pay guide at $25.50/h evaluated on the UTC clock."""
    return PayGuideTerms(base_rate=Decimal("25.50"), timezone="UTC")


@pytest.fixture
def evening_penalty() -> PenaltyRule:
    """Weekday evening penalty 18:00-24:00 at 1.25x."""
    return PenaltyRule(
        rule_id="evening",
        name="Evening",
        multiplier=Decimal("1.25"),
        start_time="18:00",
        end_time="24:00",
        days_of_week=frozenset({1, 2, 3, 4, 5}),
    )


@pytest.fixture
def daily_overtime() -> OvertimeRule:
    """Overtime any time of day: 1.5x for three hours, then 2x."""
    return OvertimeRule(
        rule_id="daily-ot",
        name="Daily overtime",
        first_tier_multiplier=Decimal("1.5"),
        second_tier_multiplier=Decimal("2.0"),
    )


@pytest.fixture
def tax_engine() -> TaxWithholdingEngine:
    """Withholding engine on the built-in 2024-25 tables."""
    return TaxWithholdingEngine(default_coefficient_table(), default_levy_table())
