"""Pay guide, time frame and public holiday models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shift_payroll.calculators.types import OvertimeRule, PayGuideTerms, PenaltyRule, PublicHolidayDate
from shift_payroll.models.base import Base, Money, TimestampMixin


class PayGuide(Base, TimestampMixin):
    """Base rate and shift limits."""

    __tablename__ = "pay_guide"

    pay_guide_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    base_rate: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    minimum_shift_hours: Mapped[Decimal | None] = mapped_column(Money(), nullable=True)
    maximum_shift_hours: Mapped[Decimal] = mapped_column(Money(), nullable=False, default=Decimal("11"))
    timezone: Mapped[str] = mapped_column(String, nullable=False, default="Australia/Sydney")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_terms(self) -> PayGuideTerms:
        return PayGuideTerms(
            base_rate=self.base_rate,
            timezone=self.timezone,
            minimum_shift_hours=self.minimum_shift_hours,
            maximum_shift_hours=self.maximum_shift_hours,
            pay_guide_id=str(self.pay_guide_id),
        )


class _TimeFrameColumns:
    """Window columns shared by penalty and overtime time frames."""

    name: Mapped[str] = mapped_column(String, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    day_of_week: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    is_public_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def _days(self) -> frozenset[int] | None:
        return frozenset(self.day_of_week) if self.day_of_week else None


class PenaltyTimeFrame(_TimeFrameColumns, Base, TimestampMixin):
    """Multiplier for work inside a local time/day window."""

    __tablename__ = "penalty_time_frame"

    penalty_time_frame_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    pay_guide_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_guide.pay_guide_id", ondelete="CASCADE"),
        nullable=False,
    )
    multiplier: Mapped[Decimal] = mapped_column(Money(), nullable=False)

    __table_args__ = (CheckConstraint("multiplier > 0", name="penalty_time_frame_multiplier_check"),)

    def to_rule(self) -> PenaltyRule:
        return PenaltyRule(
            rule_id=str(self.penalty_time_frame_id),
            multiplier=self.multiplier,
            name=self.name,
            start_time=self.start_time,
            end_time=self.end_time,
            days_of_week=self._days(),
            is_public_holiday=self.is_public_holiday,
            priority=self.priority,
            is_active=self.is_active,
        )


class OvertimeTimeFrame(_TimeFrameColumns, Base, TimestampMixin):
    """Tiered multipliers for minutes past the pay guide's maximum shift hours."""

    __tablename__ = "overtime_time_frame"

    overtime_time_frame_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    pay_guide_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_guide.pay_guide_id", ondelete="CASCADE"),
        nullable=False,
    )
    first_three_hours_mult: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    after_three_hours_mult: Mapped[Decimal] = mapped_column(Money(), nullable=False)

    def to_rule(self) -> OvertimeRule:
        return OvertimeRule(
            rule_id=str(self.overtime_time_frame_id),
            first_tier_multiplier=self.first_three_hours_mult,
            second_tier_multiplier=self.after_three_hours_mult,
            name=self.name,
            start_time=self.start_time,
            end_time=self.end_time,
            days_of_week=self._days(),
            is_public_holiday=self.is_public_holiday,
            priority=self.priority,
            is_active=self.is_active,
        )


class PublicHoliday(Base, TimestampMixin):
    """Public holiday date for a pay guide."""

    __tablename__ = "public_holiday"

    public_holiday_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    pay_guide_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pay_guide.pay_guide_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_holiday(self) -> PublicHolidayDate:
        return PublicHolidayDate(holiday_date=self.holiday_date, name=self.name, is_active=self.is_active)
