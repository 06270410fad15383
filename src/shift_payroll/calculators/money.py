"""Decimal parsing and rounding helpers for monetary values."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
DOLLAR = Decimal("1")
HOURS_PRECISION = Decimal("0.01")
ZERO = Decimal("0")


class InvalidDecimalInputError(Exception):
    """Raised when a monetary value cannot be parsed as an exact decimal."""

    def __init__(self, value: Any, field: str | None = None):
        self.value = value
        self.field = field
        where = f" for '{field}'" if field else ""
        super().__init__(f"Invalid decimal value{where}: {value!r}")


def parse_decimal(value: Any, field: str | None = None) -> Decimal:
    """Parse an upstream monetary/rate value into an exact Decimal.

    Accepts Decimal, int, or a plain decimal string ("1234.50", "-12", "1,234.50").
    Floats are rejected: they have already lost exactness.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidDecimalInputError(value, field)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            raise InvalidDecimalInputError(value, field)
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise InvalidDecimalInputError(value, field) from None
    else:
        raise InvalidDecimalInputError(value, field)

    if not result.is_finite():
        raise InvalidDecimalInputError(value, field)
    return result


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_dollars(amount: Decimal) -> Decimal:
    return amount.quantize(DOLLAR, rounding=ROUND_HALF_UP)


def round_hours(hours: Decimal) -> Decimal:
    return hours.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


def floor_dollars(amount: Decimal) -> Decimal:
    """Ignore cents (toward zero for the non-negative values it is used on)."""
    return amount.quantize(DOLLAR, rounding=ROUND_DOWN)
