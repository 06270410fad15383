"""Built-in coefficient tables, tax year helpers and scale selection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from shift_payroll.calculators.tax_calculator import (
    LEVY_NO_THRESHOLD,
    LEVY_WITH_THRESHOLD,
    CoefficientTable,
)
from shift_payroll.calculators.types import TaxBracket

DEFAULT_TAX_YEAR = "2024-25"


def _bracket(scale: str, earnings_from: str, earnings_to: str | None, a: str, b: str) -> TaxBracket:
    return TaxBracket(
        scale=scale,
        earnings_from=Decimal(earnings_from),
        earnings_to=None if earnings_to is None else Decimal(earnings_to),
        coefficient_a=Decimal(a),
        coefficient_b=Decimal(b),
    )


# Weekly coefficients, 2024-25.
DEFAULT_TAX_BRACKETS: tuple[TaxBracket, ...] = (
    # Tax-free threshold claimed
    _bracket("scale2", "0", "371", "0", "0"),
    _bracket("scale2", "371", "515", "0.19", "70.5385"),
    _bracket("scale2", "515", "721", "0.2348", "93.4615"),
    _bracket("scale2", "721", "1282", "0.219", "82.1154"),
    _bracket("scale2", "1282", "2307", "0.3477", "247.1154"),
    _bracket("scale2", "2307", None, "0.45", "482.6731"),
    # Tax-free threshold not claimed
    _bracket("scale1", "0", "88", "0.19", "0"),
    _bracket("scale1", "88", "371", "0.2348", "12.7692"),
    _bracket("scale1", "371", "515", "0.219", "6.5385"),
    _bracket("scale1", "515", "721", "0.3477", "72.5385"),
    _bracket("scale1", "721", "1282", "0.45", "146.0769"),
    _bracket("scale1", "1282", None, "0.45", "146.0769"),
)

DEFAULT_LEVY_BRACKETS: tuple[TaxBracket, ...] = (
    _bracket(LEVY_WITH_THRESHOLD, "0", "1288", "0", "0"),
    _bracket(LEVY_WITH_THRESHOLD, "1288", "2403", "0.15", "193.20"),
    _bracket(LEVY_WITH_THRESHOLD, "2403", None, "0.17", "241.26"),
    _bracket(LEVY_NO_THRESHOLD, "0", "929", "0", "0"),
    _bracket(LEVY_NO_THRESHOLD, "929", "2044", "0.15", "139.35"),
    _bracket(LEVY_NO_THRESHOLD, "2044", None, "0.17", "180.23"),
)


def default_coefficient_table(tax_year: str = DEFAULT_TAX_YEAR) -> CoefficientTable:
    return CoefficientTable(DEFAULT_TAX_BRACKETS, tax_year=tax_year)


def default_levy_table(tax_year: str = DEFAULT_TAX_YEAR) -> CoefficientTable:
    return CoefficientTable(DEFAULT_LEVY_BRACKETS, tax_year=tax_year)


def tax_year_for(day: date) -> str:
    """Financial year label running 1 July to 30 June, e.g. "2024-25"."""
    start_year = day.year if day.month >= 7 else day.year - 1
    return f"{start_year}-{(start_year + 1) % 100:02d}"


@dataclass(frozen=True)
class TaxProfile:
    """An employee's withholding declaration."""

    has_tax_file_number: bool = True
    claimed_tax_free_threshold: bool = True
    is_foreign_resident: bool = False
    medicare_exemption: str = "none"  # none | half | full
    has_study_loan: bool = False


def select_scale(profile: TaxProfile) -> str:
    """Map a declaration to a withholding scale."""
    if not profile.has_tax_file_number:
        return "scale4"
    if profile.is_foreign_resident:
        return "scale3"
    if profile.medicare_exemption == "full":
        return "scale5"
    if profile.medicare_exemption == "half":
        return "scale6"
    if profile.claimed_tax_free_threshold:
        return "scale2"
    return "scale1"


def select_levy_scale(profile: TaxProfile) -> str:
    if profile.claimed_tax_free_threshold or profile.is_foreign_resident:
        return LEVY_WITH_THRESHOLD
    return LEVY_NO_THRESHOLD
