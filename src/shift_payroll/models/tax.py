"""Withholding coefficient and levy rate tables, versioned by tax year."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shift_payroll.calculators.types import TaxBracket
from shift_payroll.models.base import Base, Money, TimestampMixin


class _BracketColumns:
    tax_year: Mapped[str] = mapped_column(String, nullable=False)
    scale: Mapped[str] = mapped_column(String, nullable=False)
    earnings_from: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    earnings_to: Mapped[Decimal | None] = mapped_column(Money(), nullable=True)
    coefficient_a: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    coefficient_b: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_bracket(self) -> TaxBracket:
        return TaxBracket(
            scale=self.scale,
            earnings_from=self.earnings_from,
            earnings_to=self.earnings_to,
            coefficient_a=self.coefficient_a,
            coefficient_b=self.coefficient_b,
        )


class TaxCoefficient(_BracketColumns, Base, TimestampMixin):
    """Weekly withholding bracket for one scale."""

    __tablename__ = "tax_coefficient"

    tax_coefficient_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    __table_args__ = (
        UniqueConstraint("tax_year", "scale", "earnings_from", name="tax_coefficient_bracket_unique"),
    )


class LevyRate(_BracketColumns, Base, TimestampMixin):
    """Weekly study loan levy bracket."""

    __tablename__ = "levy_rate"

    levy_rate_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    __table_args__ = (
        UniqueConstraint("tax_year", "scale", "earnings_from", name="levy_rate_bracket_unique"),
    )
