"""Tests for scale selection and tax year labels."""

from datetime import date

import pytest

from shift_payroll.calculators.tax_calculator import LEVY_NO_THRESHOLD, LEVY_WITH_THRESHOLD
from shift_payroll.calculators.tax_defaults import (
    TaxProfile,
    default_levy_table,
    select_levy_scale,
    select_scale,
    tax_year_for,
)


class TestScaleSelection:
    """Declaration to withholding scale."""

    @pytest.mark.parametrize(
        "profile, scale",
        [
            (TaxProfile(), "scale2"),
            (TaxProfile(claimed_tax_free_threshold=False), "scale1"),
            (TaxProfile(is_foreign_resident=True), "scale3"),
            (TaxProfile(has_tax_file_number=False), "scale4"),
            (TaxProfile(medicare_exemption="full"), "scale5"),
            (TaxProfile(medicare_exemption="half"), "scale6"),
        ],
    )
    def test_select_scale(self, profile, scale):
        assert select_scale(profile) == scale

    def test_missing_tax_file_number_wins(self):
        """No TFN overrides every other answer."""
        profile = TaxProfile(has_tax_file_number=False, is_foreign_resident=True, medicare_exemption="full")
        assert select_scale(profile) == "scale4"

    def test_levy_scale(self):
        assert select_levy_scale(TaxProfile()) == LEVY_WITH_THRESHOLD
        assert select_levy_scale(TaxProfile(claimed_tax_free_threshold=False)) == LEVY_NO_THRESHOLD
        assert (
            select_levy_scale(TaxProfile(claimed_tax_free_threshold=False, is_foreign_resident=True))
            == LEVY_WITH_THRESHOLD
        )


class TestTaxYear:
    @pytest.mark.parametrize(
        "day, label",
        [
            (date(2024, 7, 1), "2024-25"),
            (date(2025, 6, 30), "2024-25"),
            (date(2024, 6, 30), "2023-24"),
            (date(1999, 12, 31), "1999-00"),
        ],
    )
    def test_financial_year(self, day, label):
        assert tax_year_for(day) == label


def test_default_levy_table_is_contiguous():
    default_levy_table().validate()
