"""Shift, pay period and extra models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shift_payroll.calculators.money import ZERO
from shift_payroll.calculators.types import BreakInterval, ExtraAmount, PeriodTotals, ShiftSpan
from shift_payroll.models.base import Base, Money, TimestampMixin, UTCDateTime, utcnow


# ===== Shifts =====


class Shift(Base, TimestampMixin):
    """A worked shift, assigned to at most one pay period."""

    __tablename__ = "shift"

    shift_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    pay_guide_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_guide.pay_guide_id"),
        nullable=False,
    )
    pay_period_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_period.pay_period_id", ondelete="SET NULL"),
        nullable=True,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shift_type: Mapped[str] = mapped_column(String, nullable=False, default="ordinary")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cached per-shift results, refreshed on aggregation
    total_hours: Mapped[Decimal | None] = mapped_column(Money(), nullable=True)
    total_pay: Mapped[Decimal | None] = mapped_column(Money(), nullable=True)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="shift_times_check"),
        CheckConstraint("break_minutes >= 0", name="shift_break_check"),
    )

    # Relationships
    break_periods: Mapped[list[BreakPeriod]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BreakPeriod.start_time",
    )

    def to_span(self) -> ShiftSpan:
        return ShiftSpan(
            start=self.start_time,
            end=self.end_time,
            break_minutes=self.break_minutes,
            break_periods=tuple(
                BreakInterval(start=b.start_time, end=b.end_time) for b in self.break_periods
            ),
            shift_type=self.shift_type,
            shift_id=str(self.shift_id),
        )


class BreakPeriod(Base):
    """Unpaid break inside a shift."""

    __tablename__ = "break_period"

    break_period_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    shift_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("shift.shift_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (CheckConstraint("end_time > start_time", name="break_period_times_check"),)

    shift: Mapped[Shift] = relationship(back_populates="break_periods")


# ===== Pay periods =====


class PayPeriod(Base, TimestampMixin):
    """A user's pay period and its last aggregated totals."""

    __tablename__ = "pay_period"

    pay_period_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    total_hours: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    shift_pay: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    extras_pay: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    gross_pay: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    taxable_income: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    income_tax: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    levy: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    tax_withheld: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=ZERO)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "start_date", name="pay_period_user_start_unique"),
        CheckConstraint("status IN ('open', 'verified')", name="pay_period_status_check"),
        CheckConstraint("end_date > start_date", name="pay_period_dates_check"),
    )

    def totals(self) -> PeriodTotals:
        return PeriodTotals(
            total_hours=self.total_hours,
            shift_pay=self.shift_pay,
            extras_pay=self.extras_pay,
            gross_pay=self.gross_pay,
            taxable_income=self.taxable_income,
            income_tax=self.income_tax,
            levy=self.levy,
            tax_withheld=self.tax_withheld,
            net_pay=self.net_pay,
        )


class PayPeriodExtra(Base, TimestampMixin):
    """Ad-hoc amount (allowance, bonus, deduction) on a pay period."""

    __tablename__ = "pay_period_extra"

    pay_period_extra_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    pay_period_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_period.pay_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_amount(self) -> ExtraAmount:
        return ExtraAmount(label=self.type, amount=self.amount, taxable=self.taxable)


class PayPeriodExtraTemplate(Base, TimestampMixin):
    """Per-user default extra, expanded into new periods that have none."""

    __tablename__ = "pay_period_extra_template"

    pay_period_extra_template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
