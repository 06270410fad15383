"""Pay period aggregation: shifts + extras -> totals."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from shift_payroll.calculators.money import ZERO, round_cents, round_hours
from shift_payroll.calculators.tax_calculator import TaxWithholdingEngine
from shift_payroll.calculators.types import ExtraAmount, PayBreakdown, PeriodTotals, TaxContext


class PayPeriodAggregator:
    """Folds shift breakdowns and extras into PeriodTotals.

    Always recomputes from the inputs; there is no notion of previous totals.
    """

    def __init__(self, tax_engine: TaxWithholdingEngine):
        self.tax_engine = tax_engine

    def aggregate(
        self,
        breakdowns: Iterable[PayBreakdown],
        extras: Iterable[ExtraAmount],
        tax_context: TaxContext,
    ) -> PeriodTotals:
        breakdowns = list(breakdowns)
        extras = list(extras)

        shift_pay = sum((b.gross_pay for b in breakdowns), ZERO)
        total_hours = sum((b.worked_hours for b in breakdowns), ZERO)
        extras_pay = sum((e.amount for e in extras), ZERO)
        non_taxable = sum((e.amount for e in extras if not e.taxable), ZERO)

        gross_pay = round_cents(shift_pay + extras_pay)
        taxable_income = round_cents(gross_pay - non_taxable)

        withholding = self.tax_engine.withhold_breakdown(
            taxable_income,
            tax_context.scale,
            has_levy=tax_context.has_levy,
            cadence=tax_context.cadence,
            levy_scale=tax_context.levy_scale,
        )

        return PeriodTotals(
            total_hours=round_hours(total_hours),
            shift_pay=round_cents(shift_pay),
            extras_pay=round_cents(extras_pay),
            gross_pay=gross_pay,
            taxable_income=taxable_income,
            income_tax=withholding.income_tax,
            levy=withholding.levy,
            tax_withheld=withholding.total,
            net_pay=gross_pay - withholding.total,
        )


def totals_differ(stored: PeriodTotals, computed: PeriodTotals, tolerance: Decimal = Decimal("0.01")) -> dict[str, tuple[Decimal, Decimal]]:
    """Return {field: (stored, computed)} for money fields differing by more than tolerance."""
    differences = {}
    for name in ("gross_pay", "taxable_income", "tax_withheld", "net_pay"):
        old, new = getattr(stored, name), getattr(computed, name)
        if abs(old - new) > tolerance:
            differences[name] = (old, new)
    return differences
