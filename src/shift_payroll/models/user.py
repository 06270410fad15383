"""User and tax declaration models."""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shift_payroll.calculators.tax_defaults import TaxProfile
from shift_payroll.models.base import Base, TimestampMixin


class AppUser(Base, TimestampMixin):
    """The single tenant's worker profile."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    timezone: Mapped[str] = mapped_column(String, nullable=False, default="Australia/Sydney")
    pay_period_type: Mapped[str] = mapped_column(String, nullable=False, default="WEEKLY")
    default_pay_guide_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_guide.pay_guide_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "pay_period_type IN ('WEEKLY', 'FORTNIGHTLY', 'MONTHLY')",
            name="app_user_pay_period_type_check",
        ),
    )


class TaxSettings(Base, TimestampMixin):
    """A user's withholding declaration."""

    __tablename__ = "tax_settings"

    tax_settings_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    has_tax_file_number: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    claimed_tax_free_threshold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_foreign_resident: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    medicare_exemption: Mapped[str] = mapped_column(String, nullable=False, default="none")
    has_study_loan: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "medicare_exemption IN ('none', 'half', 'full')",
            name="tax_settings_medicare_exemption_check",
        ),
    )

    def to_profile(self) -> TaxProfile:
        return TaxProfile(
            has_tax_file_number=self.has_tax_file_number,
            claimed_tax_free_threshold=self.claimed_tax_free_threshold,
            is_foreign_resident=self.is_foreign_resident,
            medicare_exemption=self.medicare_exemption,
            has_study_loan=self.has_study_loan,
        )
