"""Withholding from bracketed coefficient tables."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable, Mapping

from shift_payroll.calculators.money import ZERO, floor_dollars, parse_decimal, round_cents, round_dollars
from shift_payroll.calculators.types import Cadence, TaxBracket, TaxRounding, WithholdingBreakdown

logger = logging.getLogger(__name__)

LEVY_WITH_THRESHOLD = "WITH_TFT_OR_FR"
LEVY_NO_THRESHOLD = "NO_TFT"

# Scales that imply a claimed tax-free threshold or foreign residency.
_LEVY_SCALE_BY_TAX_SCALE = {
    "scale1": LEVY_NO_THRESHOLD,
    "scale2": LEVY_WITH_THRESHOLD,
    "scale3": LEVY_WITH_THRESHOLD,
    "scale4": LEVY_NO_THRESHOLD,
    "scale5": LEVY_WITH_THRESHOLD,
    "scale6": LEVY_WITH_THRESHOLD,
}

LEVY_CENTS_ADJUSTMENT = Decimal("0.99")


class NoBracketFoundError(Exception):
    """Raised when no bracket covers the earnings for a scale."""

    def __init__(self, scale: str, earnings: Decimal | None = None, message: str | None = None):
        self.scale = scale
        self.earnings = earnings
        if message is None:
            if earnings is None:
                message = f"No tax brackets configured for scale '{scale}'"
            else:
                message = f"No tax bracket for scale '{scale}' covers earnings {earnings}"
        super().__init__(message)


class InvalidCoefficientTableError(NoBracketFoundError):
    """Raised when a scale's brackets are not contiguous or unbounded at the top."""

    def __init__(self, scale: str, reason: str):
        self.reason = reason
        super().__init__(scale, message=f"Invalid coefficient table for scale '{scale}': {reason}")


class CoefficientTable:
    """Brackets grouped by scale, ordered by earnings_from.

    For every scale the brackets must be contiguous (each earnings_to equals
    the next earnings_from), start at zero and end with an unbounded bracket.
    """

    def __init__(self, brackets: Iterable[TaxBracket], tax_year: str | None = None):
        self.tax_year = tax_year
        grouped: dict[str, list[TaxBracket]] = defaultdict(list)
        for bracket in brackets:
            grouped[bracket.scale].append(bracket)
        self._by_scale = {
            scale: sorted(rows, key=lambda b: b.earnings_from) for scale, rows in grouped.items()
        }

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], tax_year: str | None = None) -> CoefficientTable:
        """Build a table from mappings with scale/earnings_from/earnings_to/coefficient_a/coefficient_b."""
        brackets = []
        for row in rows:
            earnings_to = row.get("earnings_to")
            brackets.append(
                TaxBracket(
                    scale=row["scale"],
                    earnings_from=parse_decimal(row["earnings_from"], "earnings_from"),
                    earnings_to=None if earnings_to is None else parse_decimal(earnings_to, "earnings_to"),
                    coefficient_a=parse_decimal(row["coefficient_a"], "coefficient_a"),
                    coefficient_b=parse_decimal(row["coefficient_b"], "coefficient_b"),
                )
            )
        return cls(brackets, tax_year=tax_year)

    @property
    def scales(self) -> list[str]:
        return sorted(self._by_scale)

    def for_scale(self, scale: str) -> list[TaxBracket]:
        brackets = self._by_scale.get(scale)
        if not brackets:
            raise NoBracketFoundError(scale)
        return brackets

    def validate(self, scale: str | None = None) -> None:
        """Check contiguity for one scale, or for all scales when omitted."""
        for name in [scale] if scale else self.scales:
            brackets = self.for_scale(name)
            if brackets[0].earnings_from != ZERO:
                raise InvalidCoefficientTableError(name, "first bracket does not start at 0")
            for current, following in zip(brackets, brackets[1:]):
                if current.earnings_to is None:
                    raise InvalidCoefficientTableError(name, "unbounded bracket is not last")
                if current.earnings_to != following.earnings_from:
                    raise InvalidCoefficientTableError(
                        name,
                        f"gap or overlap between {current.earnings_to} and {following.earnings_from}",
                    )
            if brackets[-1].earnings_to is not None:
                raise InvalidCoefficientTableError(name, "last bracket must have no upper limit")

    def lookup(self, scale: str, earnings: Decimal) -> TaxBracket:
        """Return the bracket with earnings_from <= earnings < earnings_to."""
        for bracket in self.for_scale(scale):
            if bracket.contains(earnings):
                return bracket
        raise NoBracketFoundError(scale, earnings)

    def __contains__(self, scale: object) -> bool:
        return scale in self._by_scale


def levy_scale_for(scale: str) -> str:
    return _LEVY_SCALE_BY_TAX_SCALE.get(scale, LEVY_NO_THRESHOLD)


def to_weekly(amount: Decimal, cadence: Cadence | None) -> Decimal:
    if cadence is None or cadence is Cadence.WEEKLY:
        return amount
    if cadence is Cadence.FORTNIGHTLY:
        return amount / 2
    if cadence is Cadence.MONTHLY:
        return amount * 3 / 13
    raise ValueError(f"Unsupported cadence: {cadence!r}")


def from_weekly(amount: Decimal, cadence: Cadence | None) -> Decimal:
    if cadence is None or cadence is Cadence.WEEKLY:
        return amount
    if cadence is Cadence.FORTNIGHTLY:
        return amount * 2
    if cadence is Cadence.MONTHLY:
        return amount * 13 / 3
    raise ValueError(f"Unsupported cadence: {cadence!r}")


class TaxWithholdingEngine:
    """Computes withholding as earnings * A - B on the matching bracket.

    Coefficients are weekly. Without a cadence the earnings are taken as a
    weekly figure; with one they are converted to a weekly equivalent and the
    result converted back before rounding. The levy is looked up separately in
    its own table on floor(weekly) + 0.99 and added to the income tax.

    Both tables are validated on construction; a gap, overlap or bounded top
    bracket raises InvalidCoefficientTableError.
    """

    def __init__(
        self,
        coefficients: CoefficientTable,
        levy_table: CoefficientTable | None = None,
        rounding: TaxRounding = TaxRounding.CENT,
        debug_log: bool = False,
    ):
        coefficients.validate()
        if levy_table is not None:
            levy_table.validate()
        self.coefficients = coefficients
        self.levy_table = levy_table
        self.rounding = TaxRounding(rounding)
        self._log_level = logging.INFO if debug_log else logging.DEBUG

    def withhold(
        self,
        gross_earnings: Decimal,
        scale: str,
        has_levy: bool = False,
        cadence: Cadence | None = None,
        levy_scale: str | None = None,
    ) -> Decimal:
        return self.withhold_breakdown(gross_earnings, scale, has_levy, cadence, levy_scale).total

    def withhold_breakdown(
        self,
        gross_earnings: Decimal,
        scale: str,
        has_levy: bool = False,
        cadence: Cadence | None = None,
        levy_scale: str | None = None,
    ) -> WithholdingBreakdown:
        gross_earnings = parse_decimal(gross_earnings, "gross_earnings")
        # Unknown scales fail even for zero earnings.
        self.coefficients.for_scale(scale)
        if gross_earnings <= ZERO:
            return WithholdingBreakdown(income_tax=ZERO, levy=ZERO)

        weekly = to_weekly(gross_earnings, cadence)
        weekly_tax = self._apply(self.coefficients, scale, weekly)
        income_tax = self._round(from_weekly(weekly_tax, cadence))

        levy = ZERO
        if has_levy:
            levy = self._levy(weekly, levy_scale or levy_scale_for(scale), cadence)

        return WithholdingBreakdown(income_tax=income_tax, levy=levy)

    def _levy(self, weekly: Decimal, levy_scale: str, cadence: Cadence | None) -> Decimal:
        if self.levy_table is None:
            raise NoBracketFoundError(levy_scale)
        levy_earnings = floor_dollars(weekly) + LEVY_CENTS_ADJUSTMENT
        weekly_levy = self._apply(self.levy_table, levy_scale, levy_earnings)
        return self._round(from_weekly(weekly_levy, cadence))

    def _apply(self, table: CoefficientTable, scale: str, earnings: Decimal) -> Decimal:
        bracket = table.lookup(scale, earnings)
        amount = earnings * bracket.coefficient_a - bracket.coefficient_b
        logger.log(
            self._log_level,
            "Bracket lookup scale=%s earnings=%s bracket=[%s, %s) a=%s b=%s -> %s",
            scale,
            earnings,
            bracket.earnings_from,
            bracket.earnings_to,
            bracket.coefficient_a,
            bracket.coefficient_b,
            amount,
        )
        return max(amount, ZERO)

    def _round(self, amount: Decimal) -> Decimal:
        if self.rounding is TaxRounding.DOLLAR:
            return round_dollars(amount)
        return round_cents(amount)


def withhold(
    gross_earnings: Decimal,
    scale: str,
    has_levy: bool,
    coefficients: CoefficientTable,
    levy_table: CoefficientTable | None = None,
    rounding: TaxRounding = TaxRounding.CENT,
) -> Decimal:
    """Module-level shortcut for TaxWithholdingEngine.withhold."""
    return TaxWithholdingEngine(coefficients, levy_table, rounding).withhold(gross_earnings, scale, has_levy)
