"""Pay period synchronization against a real database.

Unless a test says otherwise, every shift is a 09:00-17:00 UTC day with a
30 minute break on a $25.50/h pay guide: 7.5 hours, $191.25.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from shift_payroll.calculators.money import InvalidDecimalInputError
from shift_payroll.calculators.tax_calculator import InvalidCoefficientTableError
from shift_payroll.models import PenaltyTimeFrame, TaxCoefficient, TaxSettings
from shift_payroll.services.state_machine import InvalidTransitionError, PeriodLockedError
from shift_payroll.services.store import PayPeriodNotFoundError, SqlAlchemyPayrollStore
from shift_payroll.services.sync_service import ExtraNotFoundError, PayPeriodSynchronizer

from tests.conftest import utc

DAY_PAY = Decimal("191.25")
MS = timedelta(milliseconds=1)


@pytest.fixture
def day_shift(make_shift):
    async def _make(day: date):
        return await make_shift(
            utc(day.year, day.month, day.day, 9),
            utc(day.year, day.month, day.day, 17),
            break_minutes=30,
        )

    return _make


class TestAssignShift:
    """A shift lands in the period its start falls in."""

    async def test_creates_weekly_period_with_totals(self, synchronizer, day_shift):
        shift = await day_shift(date(2024, 3, 12))

        period = await synchronizer.assign_shift(shift)

        assert shift.pay_period_id == period.pay_period_id
        assert period.start_date == utc(2024, 3, 11)
        assert period.end_date.date() == date(2024, 3, 17)
        assert period.status == "open"
        assert period.total_hours == Decimal("7.50")
        assert period.gross_pay == DAY_PAY
        assert period.tax_withheld == 0
        assert period.net_pay == DAY_PAY
        assert shift.total_pay == DAY_PAY

    async def test_assign_by_id(self, synchronizer, day_shift):
        shift = await day_shift(date(2024, 3, 12))
        period = await synchronizer.assign_shift(shift.shift_id)
        assert shift.pay_period_id == period.pay_period_id

    async def test_assigning_twice_is_a_no_op(self, synchronizer, store, user, day_shift):
        shift = await day_shift(date(2024, 3, 12))

        first = await synchronizer.assign_shift(shift)
        second = await synchronizer.assign_shift(shift)

        assert first.pay_period_id == second.pay_period_id
        assert len(await store.list_periods_for_user(user.user_id)) == 1
        assert second.gross_pay == DAY_PAY

    async def test_same_week_shares_period(self, synchronizer, store, user, day_shift):
        monday = await synchronizer.assign_shift(await day_shift(date(2024, 3, 11)))
        sunday = await synchronizer.assign_shift(await day_shift(date(2024, 3, 17)))
        next_week = await synchronizer.assign_shift(await day_shift(date(2024, 3, 18)))

        assert monday.pay_period_id == sunday.pay_period_id
        assert next_week.pay_period_id != monday.pay_period_id
        assert monday.gross_pay == DAY_PAY * 2
        assert len(await store.list_periods_for_user(user.user_id)) == 2

    async def test_rejects_verified_target(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.verify_period(period.pay_period_id)

        late = await day_shift(date(2024, 3, 13))
        with pytest.raises(PeriodLockedError) as exc_info:
            await synchronizer.assign_shift(late)
        assert exc_info.value.pay_period_id == period.pay_period_id
        assert late.pay_period_id is None

    async def test_penalty_frames_from_database(self, db_session, synchronizer, pay_guide, make_shift):
        """3h regular + 3h at 1.25x: 76.50 + 95.625 -> 172.13."""
        db_session.add(
            PenaltyTimeFrame(
                pay_guide_id=pay_guide.pay_guide_id,
                name="Weekday evening",
                start_time="18:00",
                end_time="24:00",
                day_of_week=[1, 2, 3, 4, 5],
                multiplier=Decimal("1.25"),
            )
        )
        await db_session.flush()
        shift = await make_shift(utc(2024, 3, 12, 15), utc(2024, 3, 12, 21))

        period = await synchronizer.assign_shift(shift)

        assert shift.total_hours == Decimal("6")
        assert period.gross_pay == Decimal("172.13")


class TestReassignAll:
    """Cadence changes move shifts between periods."""

    async def _two_weeks(self, synchronizer, day_shift):
        first = await day_shift(date(2024, 3, 5))
        second = await day_shift(date(2024, 3, 12))
        week1 = await synchronizer.assign_shift(first)
        week2 = await synchronizer.assign_shift(second)
        return first, second, week1, week2

    async def test_weekly_to_fortnightly(self, synchronizer, store, user, day_shift):
        first, second, week1, week2 = await self._two_weeks(synchronizer, day_shift)

        result = await synchronizer.reassign_all(user.user_id, "FORTNIGHTLY")

        assert result.updated is True
        assert result.moved_shifts == 1
        assert result.removed_periods == [week2.pay_period_id]
        assert user.pay_period_type == "FORTNIGHTLY"

        periods = await store.list_periods_for_user(user.user_id)
        assert [p.pay_period_id for p in periods] == [week1.pay_period_id]
        fortnight = periods[0]
        assert fortnight.start_date == utc(2024, 3, 4)
        assert fortnight.end_date.date() == date(2024, 3, 17)
        assert first.pay_period_id == second.pay_period_id == fortnight.pay_period_id
        assert fortnight.gross_pay == DAY_PAY * 2
        assert fortnight.tax_withheld == 0

    async def test_second_run_moves_nothing(self, synchronizer, user, day_shift):
        await self._two_weeks(synchronizer, day_shift)
        await synchronizer.reassign_all(user.user_id, "FORTNIGHTLY")

        again = await synchronizer.reassign_all(user.user_id, "fortnightly")

        assert again.updated is False
        assert again.moved_shifts == 0

    async def test_rebuild_after_reassign_moves_nothing(self, synchronizer, user, day_shift):
        await self._two_weeks(synchronizer, day_shift)
        await synchronizer.reassign_all(user.user_id, "FORTNIGHTLY")

        [rebuilt] = await synchronizer.rebuild_periods(user.user_id)

        assert rebuilt.updated is False
        assert rebuilt.moved_shifts == 0
        assert rebuilt.removed_periods == []

    async def test_round_trip_back_to_weekly(self, synchronizer, store, user, day_shift):
        first, second, week1, _ = await self._two_weeks(synchronizer, day_shift)
        await synchronizer.reassign_all(user.user_id, "FORTNIGHTLY")

        result = await synchronizer.reassign_all(user.user_id, "WEEKLY")

        periods = await store.list_periods_for_user(user.user_id)
        assert result.moved_shifts == 1
        assert [p.start_date for p in periods] == [utc(2024, 3, 4), utc(2024, 3, 11)]
        assert periods[0].pay_period_id == week1.pay_period_id
        assert periods[0].end_date.date() == date(2024, 3, 10)
        assert [p.gross_pay for p in periods] == [DAY_PAY, DAY_PAY]
        assert second.pay_period_id == periods[1].pay_period_id

    async def test_verified_periods_keep_their_shifts(self, synchronizer, store, user, day_shift):
        first, second, week1, week2 = await self._two_weeks(synchronizer, day_shift)
        await synchronizer.verify_period(week1.pay_period_id)

        result = await synchronizer.reassign_all(user.user_id, "MONTHLY")

        assert result.locked_shifts == [first.shift_id]
        assert result.moved_shifts == 1
        assert result.removed_periods == [week2.pay_period_id]
        assert first.pay_period_id == week1.pay_period_id
        assert week1.status == "verified"
        assert week1.gross_pay == DAY_PAY

        month = await store.get_period(second.pay_period_id)
        assert month.start_date == utc(2024, 3, 1)
        assert month.end_date.date() == date(2024, 3, 31)
        assert month.gross_pay == DAY_PAY

    async def test_unknown_cadence_rejected(self, synchronizer, user):
        from shift_payroll.calculators.period_boundary import UnsupportedCadenceError

        with pytest.raises(UnsupportedCadenceError):
            await synchronizer.reassign_all(user.user_id, "DAILY")
        assert user.pay_period_type == "WEEKLY"


class TestDefaultExtras:
    async def test_applied_once_to_new_period(self, synchronizer, store, laundry_template, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.assign_shift(await day_shift(date(2024, 3, 13)))

        extras = await store.find_extras_in_period(period.pay_period_id)
        assert [(e.type, e.amount, e.taxable) for e in extras] == [("Laundry allowance", Decimal("10.00"), False)]
        assert period.gross_pay == DAY_PAY * 2 + Decimal("10.00")
        assert period.taxable_income == DAY_PAY * 2

    async def test_explicit_apply_skips_period_with_extras(self, synchronizer, store, laundry_template, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))

        assert await synchronizer.apply_default_extras(laundry_template.user_id, period.pay_period_id) == []
        assert await store.count_extras_in_period(period.pay_period_id) == 1


class TestExtras:
    async def test_add_and_remove(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))

        extra = await synchronizer.add_extra(period.pay_period_id, "Bonus", "50.00")
        assert period.gross_pay == DAY_PAY + Decimal("50.00")
        assert period.taxable_income == DAY_PAY + Decimal("50.00")

        await synchronizer.remove_extra(extra.pay_period_extra_id)
        assert period.gross_pay == DAY_PAY

    async def test_float_amount_rejected(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        with pytest.raises(InvalidDecimalInputError):
            await synchronizer.add_extra(period.pay_period_id, "Bonus", 50.1)

    async def test_verified_period_rejects_extras(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.verify_period(period.pay_period_id)
        with pytest.raises(PeriodLockedError):
            await synchronizer.add_extra(period.pay_period_id, "Bonus", "50.00")

    async def test_remove_unknown_extra(self, synchronizer):
        from uuid import uuid4

        with pytest.raises(ExtraNotFoundError):
            await synchronizer.remove_extra(uuid4())


class TestRemoveShift:
    async def test_last_shift_removes_period(self, synchronizer, store, day_shift):
        shift = await day_shift(date(2024, 3, 12))
        period = await synchronizer.assign_shift(shift)

        removed = await synchronizer.remove_shift(shift)

        assert removed == period.pay_period_id
        with pytest.raises(PayPeriodNotFoundError):
            await store.get_period(period.pay_period_id)

    async def test_period_with_other_shifts_is_reaggregated(self, synchronizer, day_shift):
        shift = await day_shift(date(2024, 3, 12))
        period = await synchronizer.assign_shift(shift)
        await synchronizer.assign_shift(await day_shift(date(2024, 3, 13)))

        assert await synchronizer.remove_shift(shift.shift_id) is None
        assert period.gross_pay == DAY_PAY

    async def test_period_with_extras_is_kept(self, synchronizer, store, laundry_template, day_shift):
        shift = await day_shift(date(2024, 3, 12))
        period = await synchronizer.assign_shift(shift)

        assert await synchronizer.remove_shift(shift) is None
        kept = await store.get_period(period.pay_period_id)
        assert kept.gross_pay == Decimal("10.00")

    async def test_verified_period_rejects_removal(self, synchronizer, day_shift):
        shift = await day_shift(date(2024, 3, 12))
        period = await synchronizer.assign_shift(shift)
        await synchronizer.verify_period(period.pay_period_id)
        with pytest.raises(PeriodLockedError):
            await synchronizer.remove_shift(shift)


class TestVerificationAndResync:
    async def test_verify_then_reopen(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))

        await synchronizer.verify_period(period.pay_period_id)
        assert period.status == "verified"
        assert period.verified_at is not None

        with pytest.raises(PeriodLockedError):
            await synchronizer.resync([period.pay_period_id])

        await synchronizer.reopen_period(period.pay_period_id)
        assert period.status == "open"
        assert period.verified_at is None

        totals = await synchronizer.resync([period.pay_period_id])
        assert totals[period.pay_period_id].gross_pay == DAY_PAY

    async def test_forced_resync_of_verified_period(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.verify_period(period.pay_period_id)

        totals = await synchronizer.resync([period.pay_period_id], force=True)

        assert totals[period.pay_period_id].net_pay == DAY_PAY
        assert period.status == "verified"

    async def test_batch_with_verified_period_writes_nothing(self, db_session, synchronizer, day_shift):
        open_period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 5)))
        verified = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.verify_period(verified.pay_period_id)
        open_period.gross_pay = Decimal("1.00")
        await db_session.flush()

        with pytest.raises(PeriodLockedError):
            await synchronizer.resync([open_period.pay_period_id, verified.pay_period_id])
        assert open_period.gross_pay == Decimal("1.00")

    async def test_double_verify_rejected(self, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        await synchronizer.verify_period(period.pay_period_id)
        with pytest.raises(InvalidTransitionError):
            await synchronizer.verify_period(period.pay_period_id)

    async def test_validate_detects_drift(self, db_session, synchronizer, day_shift):
        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        assert (await synchronizer.validate_period_totals(period.pay_period_id)).is_valid

        period.gross_pay = Decimal("999.00")
        await db_session.flush()

        validation = await synchronizer.validate_period_totals(period.pay_period_id)
        assert not validation.is_valid
        assert validation.differences == {"gross_pay": (Decimal("999.00"), DAY_PAY)}


class TestWithholdingInputs:
    async def test_stored_coefficients_preferred(self, db_session, synchronizer, day_shift):
        """2024-03 falls in the 2023-24 tax year: 191.25 * 0.1 = 19.125."""
        db_session.add(
            TaxCoefficient(
                tax_year="2023-24",
                scale="scale2",
                earnings_from=Decimal("0"),
                earnings_to=None,
                coefficient_a=Decimal("0.1"),
                coefficient_b=Decimal("0"),
            )
        )
        await db_session.flush()

        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))

        assert period.tax_withheld == Decimal("19.13")
        assert period.net_pay == Decimal("172.12")

    async def test_tax_settings_select_scale(self, db_session, synchronizer, user, day_shift):
        """Scale 1 on 191.25: 191.25 * 0.2348 - 12.7692 = 32.1363."""
        db_session.add(TaxSettings(user_id=user.user_id, claimed_tax_free_threshold=False))
        await db_session.flush()

        period = await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))

        assert period.income_tax == Decimal("32.14")
        assert period.net_pay == Decimal("159.11")

    async def test_overlapping_stored_table_rejected(self, db_session, synchronizer, day_shift):
        db_session.add_all(
            [
                TaxCoefficient(
                    tax_year="2023-24",
                    scale="scale2",
                    earnings_from=Decimal("0"),
                    earnings_to=Decimal("800"),
                    coefficient_a=Decimal("0.1"),
                    coefficient_b=Decimal("0"),
                ),
                TaxCoefficient(
                    tax_year="2023-24",
                    scale="scale2",
                    earnings_from=Decimal("700"),
                    earnings_to=None,
                    coefficient_a=Decimal("0.3"),
                    coefficient_b=Decimal("0"),
                ),
            ]
        )
        await db_session.flush()

        with pytest.raises(InvalidCoefficientTableError) as exc_info:
            await synchronizer.assign_shift(await day_shift(date(2024, 3, 12)))
        assert exc_info.value.scale == "scale2"


class TestFindOrCreatePeriod:
    async def test_existing_period_returned(self, store, user):
        start, end = utc(2024, 3, 11), utc(2024, 3, 18)
        created, was_created = await store.find_or_create_period(user.user_id, start, end)
        found, found_created = await store.find_or_create_period(user.user_id, start, end)

        assert was_created is True
        assert found_created is False
        assert found.pay_period_id == created.pay_period_id

    async def test_lost_race_reads_winner(self, store, user, monkeypatch):
        """An insert that hits the unique constraint falls back to the existing row."""
        start, end = utc(2024, 3, 11), utc(2024, 3, 18)
        winner, _ = await store.find_or_create_period(user.user_id, start, end)

        original = store._find_period
        calls = []

        async def stale_then_fresh(user_id, period_start):
            calls.append(period_start)
            if len(calls) == 1:
                return None
            return await original(user_id, period_start)

        monkeypatch.setattr(store, "_find_period", stale_then_fresh)

        period, created = await store.find_or_create_period(user.user_id, start, end)

        assert created is False
        assert period.pay_period_id == winner.pay_period_id
        assert len(calls) == 2


class TestZonedPeriods:
    """Periods cut on the Australia/Sydney clock for a user stored as UTC."""

    async def _sydney_day(self, make_shift, guide, day: date, utc_offset: int):
        start = utc(day.year, day.month, day.day, 9) - timedelta(hours=utc_offset)
        return await make_shift(start, start + timedelta(hours=8), break_minutes=30, guide=guide)

    async def test_rebuild_is_stable_across_dst_end(
        self, db_session, test_engine, synchronizer, user, make_shift, sydney_guide
    ):
        """Clocks went back on 2024-04-07; reloaded boundaries still match."""
        shifts = [
            await self._sydney_day(make_shift, sydney_guide, date(2024, 4, 5), 11),
            await self._sydney_day(make_shift, sydney_guide, date(2024, 4, 7), 10),
            await self._sydney_day(make_shift, sydney_guide, date(2024, 4, 9), 10),
        ]
        for shift in shifts:
            await synchronizer.assign_shift(shift)
        await db_session.commit()

        factory = async_sessionmaker(test_engine, expire_on_commit=False, autoflush=False)
        async with factory() as session:
            store = SqlAlchemyPayrollStore(session)
            fresh = PayPeriodSynchronizer(store, default_timezone="UTC")

            first = await fresh.rebuild_periods(user.user_id)
            second = await fresh.rebuild_periods(user.user_id)

            assert [r.moved_shifts for r in first + second] == [0, 0]
            assert [r.updated for r in first + second] == [False, False]
            periods = await store.list_periods_for_user(user.user_id)
            assert [(p.start_date, p.end_date) for p in periods] == [
                (utc(2024, 3, 31, 13), utc(2024, 4, 7, 14) - MS),
                (utc(2024, 4, 7, 14), utc(2024, 4, 14, 14) - MS),
            ]
            assert sum(p.gross_pay for p in periods) == DAY_PAY * 3

    async def test_tax_year_follows_pay_guide_clock(self, db_session, synchronizer, make_shift, sydney_guide):
        """The Sydney week of 2024-07-01 starts on 2024-06-30 UTC but is taxed as 2024-25."""
        db_session.add(
            TaxCoefficient(
                tax_year="2023-24",
                scale="scale2",
                earnings_from=Decimal("0"),
                earnings_to=None,
                coefficient_a=Decimal("0.1"),
                coefficient_b=Decimal("0"),
            )
        )
        await db_session.flush()

        shift = await self._sydney_day(make_shift, sydney_guide, date(2024, 7, 2), 10)
        period = await synchronizer.assign_shift(shift)

        assert period.start_date == utc(2024, 6, 30, 14)
        assert period.gross_pay == DAY_PAY
        assert period.tax_withheld == 0
