"""Seed script for the built-in withholding and levy tables.

Run with:
    python scripts/seed_tax_tables.py [TAX_YEAR]

Creates the schema if needed and inserts the default 2024-25 scale1/scale2
coefficients and levy brackets under the given tax year label. Existing rows
for that year are left alone.
"""

from __future__ import annotations

import asyncio
import sys

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shift_payroll.calculators.tax_defaults import (
    DEFAULT_LEVY_BRACKETS,
    DEFAULT_TAX_BRACKETS,
    DEFAULT_TAX_YEAR,
)
from shift_payroll.database import get_session, init_db
from shift_payroll.models import Base, LevyRate, TaxCoefficient


async def seed_coefficients(session: AsyncSession, tax_year: str) -> None:
    """Insert withholding coefficients for a tax year."""
    result = await session.execute(
        select(func.count()).select_from(TaxCoefficient).where(TaxCoefficient.tax_year == tax_year)
    )
    if result.scalar_one():
        print(f"Coefficients for {tax_year} already exist, skipping...")
        return

    for bracket in DEFAULT_TAX_BRACKETS:
        session.add(
            TaxCoefficient(
                tax_year=tax_year,
                scale=bracket.scale,
                earnings_from=bracket.earnings_from,
                earnings_to=bracket.earnings_to,
                coefficient_a=bracket.coefficient_a,
                coefficient_b=bracket.coefficient_b,
            )
        )
    await session.flush()
    print(f"Created {len(DEFAULT_TAX_BRACKETS)} coefficient brackets for {tax_year}")


async def seed_levy_rates(session: AsyncSession, tax_year: str) -> None:
    """Insert study loan levy brackets for a tax year."""
    result = await session.execute(
        select(func.count()).select_from(LevyRate).where(LevyRate.tax_year == tax_year)
    )
    if result.scalar_one():
        print(f"Levy rates for {tax_year} already exist, skipping...")
        return

    for bracket in DEFAULT_LEVY_BRACKETS:
        session.add(
            LevyRate(
                tax_year=tax_year,
                scale=bracket.scale,
                earnings_from=bracket.earnings_from,
                earnings_to=bracket.earnings_to,
                coefficient_a=bracket.coefficient_a,
                coefficient_b=bracket.coefficient_b,
            )
        )
    await session.flush()
    print(f"Created {len(DEFAULT_LEVY_BRACKETS)} levy brackets for {tax_year}")


async def main(tax_year: str) -> None:
    """Run seed script."""
    print(f"Seeding tax tables for {tax_year}...")

    engine, _ = init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_session() as session:
        await seed_coefficients(session, tax_year)
        await seed_levy_rates(session, tax_year)

    print("\nDone! Tax tables seeded successfully.")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_TAX_YEAR))
