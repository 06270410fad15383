"""Storage collaborator for the pay period synchronizer."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shift_payroll.calculators.tax_calculator import CoefficientTable
from shift_payroll.calculators.types import PayBreakdown, PeriodTotals, RuleSet
from shift_payroll.database import acquire_advisory_lock, period_lock_key, user_lock_key
from shift_payroll.models import (
    AppUser,
    LevyRate,
    OvertimeTimeFrame,
    PayGuide,
    PayPeriod,
    PayPeriodExtra,
    PayPeriodExtraTemplate,
    PenaltyTimeFrame,
    PublicHoliday,
    Shift,
    TaxCoefficient,
    TaxSettings,
)

logger = logging.getLogger(__name__)


class UserNotFoundError(Exception):
    """Raised when a user does not exist."""

    def __init__(self, user_id: Any):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class PayPeriodNotFoundError(Exception):
    """Raised when a pay period does not exist."""

    def __init__(self, pay_period_id: Any):
        self.pay_period_id = pay_period_id
        super().__init__(f"Pay period {pay_period_id} not found")


class ShiftNotFoundError(Exception):
    """Raised when a shift does not exist."""

    def __init__(self, shift_id: Any):
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} not found")


class PayrollStore(Protocol):
    """What the synchronizer needs from persistence."""

    async def get_user(self, user_id: UUID) -> AppUser: ...

    async def set_user_cadence(self, user: AppUser, cadence: str) -> None: ...

    async def find_user_ids(self) -> list[UUID]: ...

    async def find_shifts_by_user(self, user_id: UUID) -> Sequence[Shift]: ...

    async def get_shift(self, shift_id: UUID) -> Shift: ...

    async def delete_shift(self, shift: Shift) -> None: ...

    async def get_period(self, pay_period_id: UUID) -> PayPeriod: ...

    async def find_or_create_period(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> tuple[PayPeriod, bool]: ...

    async def set_shift_period(self, shift: Shift, pay_period_id: UUID | None) -> None: ...

    async def count_shifts_in_period(self, pay_period_id: UUID) -> int: ...

    async def count_extras_in_period(self, pay_period_id: UUID) -> int: ...

    async def delete_period(self, pay_period_id: UUID) -> None: ...

    async def list_periods_for_user(self, user_id: UUID) -> Sequence[PayPeriod]: ...

    async def find_shifts_in_period(self, pay_period_id: UUID) -> Sequence[Shift]: ...

    async def find_extras_in_period(self, pay_period_id: UUID) -> Sequence[PayPeriodExtra]: ...

    async def find_active_extra_templates(self, user_id: UUID) -> Sequence[PayPeriodExtraTemplate]: ...

    async def add_extra(
        self,
        pay_period_id: UUID,
        label: str,
        amount: Any,
        taxable: bool = True,
        description: str | None = None,
    ) -> PayPeriodExtra: ...

    async def get_extra(self, extra_id: UUID) -> PayPeriodExtra | None: ...

    async def delete_extra(self, extra: PayPeriodExtra) -> None: ...

    async def load_pay_guide(self, pay_guide_id: UUID) -> PayGuide: ...

    async def load_active_rules(self, pay_guide_id: UUID) -> RuleSet: ...

    async def load_coefficient_tables(
        self, tax_year: str
    ) -> tuple[CoefficientTable, CoefficientTable | None]: ...

    async def load_tax_settings(self, user_id: UUID) -> TaxSettings | None: ...

    async def persist_shift_result(self, shift: Shift, breakdown: PayBreakdown) -> None: ...

    async def persist_period_totals(self, period: PayPeriod, totals: PeriodTotals) -> None: ...

    async def set_period_status(
        self, period: PayPeriod, status: str, verified_at: datetime | None
    ) -> None: ...

    async def lock_user(self, user_id: UUID) -> None: ...

    async def lock_period(self, user_id: UUID, start: datetime) -> None: ...


class SqlAlchemyPayrollStore:
    """PayrollStore on an AsyncSession.

    Does not commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._rules_cache: dict[UUID, RuleSet] = {}
        self._tables_cache: dict[str, tuple[CoefficientTable, CoefficientTable | None]] = {}

    # ===== Users =====

    async def get_user(self, user_id: UUID) -> AppUser:
        user = await self.session.get(AppUser, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def set_user_cadence(self, user: AppUser, cadence: str) -> None:
        user.pay_period_type = cadence
        await self.session.flush()

    async def find_user_ids(self) -> list[UUID]:
        result = await self.session.execute(select(AppUser.user_id).order_by(AppUser.created_at))
        return list(result.scalars())

    async def load_tax_settings(self, user_id: UUID) -> TaxSettings | None:
        result = await self.session.execute(
            select(TaxSettings).where(TaxSettings.user_id == user_id)
        )
        return result.scalar_one_or_none()

    # ===== Shifts =====

    async def find_shifts_by_user(self, user_id: UUID) -> Sequence[Shift]:
        result = await self.session.execute(
            select(Shift)
            .where(Shift.user_id == user_id)
            .order_by(Shift.start_time, Shift.shift_id)
        )
        return result.scalars().all()

    async def get_shift(self, shift_id: UUID) -> Shift:
        shift = await self.session.get(Shift, shift_id)
        if shift is None:
            raise ShiftNotFoundError(shift_id)
        return shift

    async def delete_shift(self, shift: Shift) -> None:
        await self.session.delete(shift)
        await self.session.flush()

    async def set_shift_period(self, shift: Shift, pay_period_id: UUID | None) -> None:
        shift.pay_period_id = pay_period_id
        await self.session.flush()

    async def persist_shift_result(self, shift: Shift, breakdown: PayBreakdown) -> None:
        shift.total_hours = breakdown.worked_hours
        shift.total_pay = breakdown.gross_pay

    # ===== Pay periods =====

    async def get_period(self, pay_period_id: UUID) -> PayPeriod:
        period = await self.session.get(PayPeriod, pay_period_id)
        if period is None:
            raise PayPeriodNotFoundError(pay_period_id)
        return period

    async def _find_period(self, user_id: UUID, start: datetime) -> PayPeriod | None:
        result = await self.session.execute(
            select(PayPeriod).where(
                PayPeriod.user_id == user_id,
                PayPeriod.start_date == start,
            )
        )
        return result.scalar_one_or_none()

    async def find_or_create_period(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> tuple[PayPeriod, bool]:
        """Upsert keyed by (user_id, start_date).

        A concurrent creator that wins the unique constraint makes our insert
        fail inside a savepoint; we then read back the winner's row.
        """
        existing = await self._find_period(user_id, start)
        if existing is not None:
            if existing.end_date != end:
                logger.info(
                    "Correcting end date of pay period %s: %s -> %s",
                    existing.pay_period_id,
                    existing.end_date,
                    end,
                )
                existing.end_date = end
                await self.session.flush()
            return existing, False

        period = PayPeriod(user_id=user_id, start_date=start, end_date=end, status="open")
        try:
            async with self.session.begin_nested():
                self.session.add(period)
                await self.session.flush()
        except IntegrityError:
            logger.info("Lost pay period creation race for user %s at %s", user_id, start)
            existing = await self._find_period(user_id, start)
            if existing is None:
                raise
            return existing, False
        return period, True

    async def count_shifts_in_period(self, pay_period_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Shift).where(Shift.pay_period_id == pay_period_id)
        )
        return result.scalar_one()

    async def count_extras_in_period(self, pay_period_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(PayPeriodExtra)
            .where(PayPeriodExtra.pay_period_id == pay_period_id)
        )
        return result.scalar_one()

    async def delete_period(self, pay_period_id: UUID) -> None:
        await self.session.execute(
            delete(PayPeriodExtra).where(PayPeriodExtra.pay_period_id == pay_period_id)
        )
        period = await self.session.get(PayPeriod, pay_period_id)
        if period is not None:
            await self.session.delete(period)
        await self.session.flush()

    async def list_periods_for_user(self, user_id: UUID) -> Sequence[PayPeriod]:
        result = await self.session.execute(
            select(PayPeriod).where(PayPeriod.user_id == user_id).order_by(PayPeriod.start_date)
        )
        return result.scalars().all()

    async def find_shifts_in_period(self, pay_period_id: UUID) -> Sequence[Shift]:
        result = await self.session.execute(
            select(Shift)
            .where(Shift.pay_period_id == pay_period_id)
            .order_by(Shift.start_time, Shift.shift_id)
        )
        return result.scalars().all()

    async def persist_period_totals(self, period: PayPeriod, totals: PeriodTotals) -> None:
        period.total_hours = totals.total_hours
        period.shift_pay = totals.shift_pay
        period.extras_pay = totals.extras_pay
        period.gross_pay = totals.gross_pay
        period.taxable_income = totals.taxable_income
        period.income_tax = totals.income_tax
        period.levy = totals.levy
        period.tax_withheld = totals.tax_withheld
        period.net_pay = totals.net_pay
        await self.session.flush()

    async def set_period_status(
        self, period: PayPeriod, status: str, verified_at: datetime | None
    ) -> None:
        period.status = status
        period.verified_at = verified_at
        await self.session.flush()

    # ===== Extras =====

    async def find_extras_in_period(self, pay_period_id: UUID) -> Sequence[PayPeriodExtra]:
        result = await self.session.execute(
            select(PayPeriodExtra)
            .where(PayPeriodExtra.pay_period_id == pay_period_id)
            .order_by(PayPeriodExtra.created_at, PayPeriodExtra.pay_period_extra_id)
        )
        return result.scalars().all()

    async def find_active_extra_templates(self, user_id: UUID) -> Sequence[PayPeriodExtraTemplate]:
        result = await self.session.execute(
            select(PayPeriodExtraTemplate)
            .where(
                PayPeriodExtraTemplate.user_id == user_id,
                PayPeriodExtraTemplate.active.is_(True),
            )
            .order_by(PayPeriodExtraTemplate.sort_order, PayPeriodExtraTemplate.created_at)
        )
        return result.scalars().all()

    async def add_extra(
        self,
        pay_period_id: UUID,
        label: str,
        amount: Any,
        taxable: bool = True,
        description: str | None = None,
    ) -> PayPeriodExtra:
        extra = PayPeriodExtra(
            pay_period_id=pay_period_id,
            type=label,
            description=description,
            amount=amount,
            taxable=taxable,
        )
        self.session.add(extra)
        await self.session.flush()
        return extra

    async def get_extra(self, extra_id: UUID) -> PayPeriodExtra | None:
        return await self.session.get(PayPeriodExtra, extra_id)

    async def delete_extra(self, extra: PayPeriodExtra) -> None:
        await self.session.delete(extra)
        await self.session.flush()

    # ===== Pay guides and tax tables =====

    async def load_pay_guide(self, pay_guide_id: UUID) -> PayGuide:
        guide = await self.session.get(PayGuide, pay_guide_id)
        if guide is None:
            raise LookupError(f"Pay guide {pay_guide_id} not found")
        return guide

    async def load_active_rules(self, pay_guide_id: UUID) -> RuleSet:
        """Active penalty/overtime frames and holidays, cached per store."""
        if pay_guide_id in self._rules_cache:
            return self._rules_cache[pay_guide_id]

        penalties = await self.session.execute(
            select(PenaltyTimeFrame).where(
                PenaltyTimeFrame.pay_guide_id == pay_guide_id,
                PenaltyTimeFrame.is_active.is_(True),
            )
        )
        overtimes = await self.session.execute(
            select(OvertimeTimeFrame).where(
                OvertimeTimeFrame.pay_guide_id == pay_guide_id,
                OvertimeTimeFrame.is_active.is_(True),
            )
        )
        holidays = await self.session.execute(
            select(PublicHoliday).where(
                PublicHoliday.pay_guide_id == pay_guide_id,
                PublicHoliday.is_active.is_(True),
            )
        )
        rules = RuleSet(
            penalty_rules=tuple(frame.to_rule() for frame in penalties.scalars()),
            overtime_rules=tuple(frame.to_rule() for frame in overtimes.scalars()),
            public_holidays=tuple(h.to_holiday() for h in holidays.scalars()),
        )
        self._rules_cache[pay_guide_id] = rules
        return rules

    async def load_coefficient_tables(
        self, tax_year: str
    ) -> tuple[CoefficientTable, CoefficientTable | None]:
        """Withholding and levy tables for a tax year, cached per store."""
        if tax_year in self._tables_cache:
            return self._tables_cache[tax_year]

        coefficients = await self.session.execute(
            select(TaxCoefficient).where(
                TaxCoefficient.tax_year == tax_year,
                TaxCoefficient.is_active.is_(True),
            )
        )
        levy_rates = await self.session.execute(
            select(LevyRate).where(LevyRate.tax_year == tax_year, LevyRate.is_active.is_(True))
        )
        table = CoefficientTable((row.to_bracket() for row in coefficients.scalars()), tax_year)
        levy_brackets = [row.to_bracket() for row in levy_rates.scalars()]
        levy_table = CoefficientTable(levy_brackets, tax_year) if levy_brackets else None

        self._tables_cache[tax_year] = (table, levy_table)
        return table, levy_table

    # ===== Cross-process locks =====

    async def lock_user(self, user_id: UUID) -> None:
        await acquire_advisory_lock(self.session, user_lock_key(user_id))

    async def lock_period(self, user_id: UUID, start: datetime) -> None:
        await acquire_advisory_lock(self.session, period_lock_key(user_id, start.isoformat()))
