"""Pure pay period, shift pay and withholding calculators."""

from shift_payroll.calculators.aggregator import PayPeriodAggregator
from shift_payroll.calculators.period_boundary import (
    PeriodBoundaryCalculator,
    UnsupportedCadenceError,
    calculate_period_boundary,
)
from shift_payroll.calculators.shift_pay import InvalidShiftError, ShiftPayResolver, resolve_shift_pay
from shift_payroll.calculators.tax_calculator import (
    CoefficientTable,
    InvalidCoefficientTableError,
    NoBracketFoundError,
    TaxWithholdingEngine,
    withhold,
)
from shift_payroll.calculators.timezone_resolver import TimeZoneResolver

__all__ = [
    "PayPeriodAggregator",
    "PeriodBoundaryCalculator",
    "UnsupportedCadenceError",
    "calculate_period_boundary",
    "InvalidShiftError",
    "ShiftPayResolver",
    "resolve_shift_pay",
    "CoefficientTable",
    "InvalidCoefficientTableError",
    "NoBracketFoundError",
    "TaxWithholdingEngine",
    "withhold",
    "TimeZoneResolver",
]
