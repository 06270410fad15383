"""Pay period synchronizer: shift membership, default extras and totals."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from shift_payroll.calculators.aggregator import PayPeriodAggregator, totals_differ
from shift_payroll.calculators.money import parse_decimal
from shift_payroll.calculators.period_boundary import PeriodBoundaryCalculator, parse_cadence
from shift_payroll.calculators.shift_pay import ShiftPayResolver
from shift_payroll.calculators.tax_calculator import TaxWithholdingEngine
from shift_payroll.calculators.tax_defaults import (
    TaxProfile,
    default_coefficient_table,
    default_levy_table,
    select_levy_scale,
    select_scale,
    tax_year_for,
)
from shift_payroll.calculators.types import (
    Cadence,
    MultiplierPolicy,
    PayBreakdown,
    PeriodBoundary,
    PeriodTotals,
    TaxContext,
    TaxRounding,
)
from shift_payroll.config import Settings
from shift_payroll.models import AppUser, PayPeriod, PayPeriodExtra, Shift
from shift_payroll.models.base import utcnow
from shift_payroll.services.locking_service import LockingService
from shift_payroll.services.state_machine import PayPeriodStateMachine, PayPeriodStatus, PeriodLockedError
from shift_payroll.services.store import PayPeriodNotFoundError, PayrollStore

logger = logging.getLogger(__name__)


class ExtraNotFoundError(Exception):
    """Raised when a pay period extra does not exist."""

    def __init__(self, extra_id: Any):
        self.extra_id = extra_id
        super().__init__(f"Pay period extra {extra_id} not found")


@dataclass
class ReassignmentResult:
    """Outcome of a bulk reassignment or rebuild for one user."""

    user_id: UUID
    cadence: Cadence
    updated: bool
    moved_shifts: int = 0
    affected_periods: list[UUID] = field(default_factory=list)
    removed_periods: list[UUID] = field(default_factory=list)
    locked_shifts: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "cadence": self.cadence.value,
            "updated": self.updated,
            "moved_shifts": self.moved_shifts,
            "affected_periods": [str(p) for p in self.affected_periods],
            "removed_periods": [str(p) for p in self.removed_periods],
            "locked_shifts": [str(s) for s in self.locked_shifts],
        }


@dataclass
class TotalsValidation:
    """Stored totals compared with a fresh recomputation."""

    pay_period_id: UUID
    stored: PeriodTotals
    computed: PeriodTotals
    differences: dict[str, tuple[Decimal, Decimal]]

    @property
    def is_valid(self) -> bool:
        return not self.differences


@dataclass
class _Assignment:
    period: PayPeriod | None
    moved: bool = False
    locked: bool = False


class PayPeriodSynchronizer:
    """Keeps shifts, pay periods and period totals consistent.

    Every aggregation recomputes a period from its shifts, extras and the tax
    tables, so any operation here can be re-run safely. Verified periods are
    never mutated; resync rejects them unless forced.
    """

    def __init__(
        self,
        store: PayrollStore,
        locks: LockingService | None = None,
        multiplier_policy: MultiplierPolicy = MultiplierPolicy.MULTIPLICATIVE,
        tax_rounding: TaxRounding = TaxRounding.CENT,
        tax_year: str | None = None,
        default_timezone: str = "Australia/Sydney",
        tax_debug: bool = False,
        boundary_calculator: PeriodBoundaryCalculator | None = None,
    ):
        self.store = store
        self.locks = locks if locks is not None else LockingService()
        self.multiplier_policy = MultiplierPolicy(multiplier_policy)
        self.tax_rounding = TaxRounding(tax_rounding)
        self.tax_year = tax_year
        self.default_timezone = default_timezone
        self.tax_debug = tax_debug
        self.boundaries = boundary_calculator or PeriodBoundaryCalculator()

    @classmethod
    def from_settings(
        cls, store: PayrollStore, settings: Settings, locks: LockingService | None = None
    ) -> PayPeriodSynchronizer:
        return cls(
            store,
            locks=locks,
            multiplier_policy=MultiplierPolicy(settings.multiplier_policy),
            tax_rounding=TaxRounding(settings.tax_rounding),
            tax_year=settings.tax_year,
            default_timezone=settings.default_timezone,
            tax_debug=settings.tax_debug,
        )

    # ===== Shift membership =====

    async def assign_shift(self, shift: Shift | UUID) -> PayPeriod:
        """Put a shift into the period its start falls in and re-aggregate.

        Raises PeriodLockedError if the shift would leave or enter a verified
        period.
        """
        if not isinstance(shift, Shift):
            shift = await self.store.get_shift(shift)

        async with self.locks.user_section(shift.user_id):
            await self.store.lock_user(shift.user_id)
            user = await self.store.get_user(shift.user_id)
            dirty: set[UUID] = set()
            await self._assign(shift, user, parse_cadence(user.pay_period_type), dirty, strict=True)
            await self._reaggregate(dirty)

        return await self.store.get_period(shift.pay_period_id)

    async def reassign_all(self, user_id: UUID, cadence: Cadence | str) -> ReassignmentResult:
        """Switch a user's cadence and move every shift to its new period.

        A cadence equal to the current one is a no-op reported as
        updated=False. Shifts in verified periods stay where they are and are
        reported in locked_shifts.
        """
        new_cadence = parse_cadence(cadence)

        async with self.locks.user_section(user_id):
            await self.store.lock_user(user_id)
            user = await self.store.get_user(user_id)

            if parse_cadence(user.pay_period_type) is new_cadence:
                logger.info("User %s already on %s pay periods; nothing to do", user_id, new_cadence.value)
                return ReassignmentResult(user_id=user_id, cadence=new_cadence, updated=False)

            previous = user.pay_period_type
            await self.store.set_user_cadence(user, new_cadence.value)
            result = await self._rederive(user, new_cadence)
            result.updated = True

        logger.info(
            "Reassigned user %s from %s to %s: moved %d shift(s), %d period(s) touched, %d removed, %d locked",
            user_id,
            previous,
            new_cadence.value,
            result.moved_shifts,
            len(result.affected_periods),
            len(result.removed_periods),
            len(result.locked_shifts),
        )
        return result

    async def rebuild_periods(self, user_id: UUID | None = None) -> list[ReassignmentResult]:
        """Re-derive every shift's period from scratch and re-sync what changed.

        Intended for backfills after a boundary correction. Running it again
        with no data change moves nothing.
        """
        user_ids = [user_id] if user_id is not None else await self.store.find_user_ids()
        results = []
        for uid in user_ids:
            async with self.locks.user_section(uid):
                await self.store.lock_user(uid)
                user = await self.store.get_user(uid)
                result = await self._rederive(user, parse_cadence(user.pay_period_type))
            result.updated = bool(result.moved_shifts or result.removed_periods)
            logger.info(
                "Rebuilt periods for user %s: moved %d shift(s), removed %d period(s)",
                uid,
                result.moved_shifts,
                len(result.removed_periods),
            )
            results.append(result)
        return results

    async def remove_shift(self, shift: Shift | UUID) -> UUID | None:
        """Delete a shift; its period is deleted too if left with no shifts or extras.

        Returns the id of the removed period, if any.
        """
        if not isinstance(shift, Shift):
            shift = await self.store.get_shift(shift)

        async with self.locks.user_section(shift.user_id):
            await self.store.lock_user(shift.user_id)
            period_id = shift.pay_period_id
            period = await self._find_period(period_id) if period_id else None
            if period is not None:
                PayPeriodStateMachine.ensure_mutable(period.pay_period_id, period.status, "remove shift")

            await self.store.delete_shift(shift)
            if period is None:
                return None

            shifts_left = await self.store.count_shifts_in_period(period.pay_period_id)
            extras_left = await self.store.count_extras_in_period(period.pay_period_id)
            if shifts_left == 0 and extras_left == 0:
                await self.store.delete_period(period.pay_period_id)
                logger.info("Removed empty pay period %s", period.pay_period_id)
                return period.pay_period_id

            await self.aggregate_period(period.pay_period_id)
            return None

    async def _assign(
        self,
        shift: Shift,
        user: AppUser,
        cadence: Cadence,
        dirty: set[UUID],
        strict: bool,
    ) -> _Assignment:
        boundary = await self._boundary_for(shift, user, cadence)
        current = await self._find_period(shift.pay_period_id) if shift.pay_period_id else None

        if current is not None and current.start_date == boundary.start and current.end_date == boundary.end:
            return _Assignment(current)

        if current is not None and not PayPeriodStateMachine.can_modify(current.status):
            if strict:
                raise PeriodLockedError(current.pay_period_id, "move shift out of period")
            return _Assignment(current, locked=True)

        target, created = await self._find_or_create(user.user_id, boundary)

        if current is not None and target.pay_period_id == current.pay_period_id:
            # Same start, end date corrected in place.
            dirty.add(target.pay_period_id)
            return _Assignment(target)

        if not PayPeriodStateMachine.can_modify(target.status):
            if strict:
                raise PeriodLockedError(target.pay_period_id, "move shift into period")
            return _Assignment(current, locked=True)

        if created:
            await self._apply_default_extras(user.user_id, target)

        await self.store.set_shift_period(shift, target.pay_period_id)
        dirty.add(target.pay_period_id)
        if current is not None:
            dirty.add(current.pay_period_id)
        logger.debug(
            "Moved shift %s from period %s to %s",
            shift.shift_id,
            current.pay_period_id if current else None,
            target.pay_period_id,
        )
        return _Assignment(target, moved=True)

    async def _rederive(self, user: AppUser, cadence: Cadence) -> ReassignmentResult:
        result = ReassignmentResult(user_id=user.user_id, cadence=cadence, updated=False)
        dirty: set[UUID] = set()

        for shift in await self.store.find_shifts_by_user(user.user_id):
            assignment = await self._assign(shift, user, cadence, dirty, strict=False)
            if assignment.moved:
                result.moved_shifts += 1
            if assignment.locked:
                result.locked_shifts.append(shift.shift_id)
                logger.warning(
                    "Shift %s left in verified pay period %s",
                    shift.shift_id,
                    assignment.period.pay_period_id if assignment.period else None,
                )

        for period in await self.store.list_periods_for_user(user.user_id):
            if not PayPeriodStateMachine.can_modify(period.status):
                continue
            if await self.store.count_shifts_in_period(period.pay_period_id) == 0:
                await self.store.delete_period(period.pay_period_id)
                dirty.discard(period.pay_period_id)
                result.removed_periods.append(period.pay_period_id)

        await self._reaggregate(dirty)
        result.affected_periods = sorted(dirty, key=str)
        return result

    async def _boundary_for(self, shift: Shift, user: AppUser, cadence: Cadence) -> PeriodBoundary:
        zone = await self._zone_for(user, shift.pay_guide_id)
        return self.boundaries.period_for(shift.start_time, cadence, zone)

    async def _zone_for(self, user: AppUser, pay_guide_id: UUID | None) -> str:
        """Civil timezone periods are cut in: the pay guide's, then the user's."""
        if pay_guide_id is not None:
            guide = await self.store.load_pay_guide(pay_guide_id)
            if guide.timezone:
                return guide.timezone
        return user.timezone or self.default_timezone

    async def _find_or_create(self, user_id: UUID, boundary: PeriodBoundary) -> tuple[PayPeriod, bool]:
        async with self.locks.period_section(user_id, boundary.start):
            await self.store.lock_period(user_id, boundary.start)
            return await self.store.find_or_create_period(user_id, boundary.start, boundary.end)

    async def _find_period(self, pay_period_id: UUID) -> PayPeriod | None:
        try:
            return await self.store.get_period(pay_period_id)
        except PayPeriodNotFoundError:
            return None

    async def _reaggregate(self, period_ids: Iterable[UUID]) -> None:
        for pay_period_id in sorted(period_ids, key=str):
            period = await self._find_period(pay_period_id)
            if period is None or not PayPeriodStateMachine.can_recalculate(period.status):
                continue
            await self.aggregate_period(pay_period_id)

    # ===== Extras =====

    async def apply_default_extras(self, user_id: UUID, pay_period_id: UUID) -> list[PayPeriodExtra]:
        """Expand the user's active templates into a period that has no extras.

        Returns the created extras; empty when the period already had any.
        """
        period = await self.store.get_period(pay_period_id)
        PayPeriodStateMachine.ensure_mutable(pay_period_id, period.status, "add extras")
        async with self.locks.period_section(period.user_id, period.start_date):
            await self.store.lock_period(period.user_id, period.start_date)
            created = await self._apply_default_extras(user_id, period)
        if created:
            await self.aggregate_period(pay_period_id)
        return created

    async def _apply_default_extras(self, user_id: UUID, period: PayPeriod) -> list[PayPeriodExtra]:
        if await self.store.count_extras_in_period(period.pay_period_id) > 0:
            return []
        created = []
        for template in await self.store.find_active_extra_templates(user_id):
            created.append(
                await self.store.add_extra(
                    period.pay_period_id,
                    template.label,
                    template.amount,
                    taxable=template.taxable,
                    description=template.description,
                )
            )
        if created:
            logger.info("Applied %d default extra(s) to pay period %s", len(created), period.pay_period_id)
        return created

    async def add_extra(
        self,
        pay_period_id: UUID,
        label: str,
        amount: Any,
        taxable: bool = True,
        description: str | None = None,
    ) -> PayPeriodExtra:
        amount = parse_decimal(amount, "amount")
        period = await self.store.get_period(pay_period_id)
        PayPeriodStateMachine.ensure_mutable(pay_period_id, period.status, "add extra")
        extra = await self.store.add_extra(pay_period_id, label, amount, taxable=taxable, description=description)
        await self.aggregate_period(pay_period_id)
        return extra

    async def remove_extra(self, extra_id: UUID) -> None:
        extra = await self.store.get_extra(extra_id)
        if extra is None:
            raise ExtraNotFoundError(extra_id)
        period = await self.store.get_period(extra.pay_period_id)
        PayPeriodStateMachine.ensure_mutable(period.pay_period_id, period.status, "remove extra")
        await self.store.delete_extra(extra)
        await self.aggregate_period(period.pay_period_id)

    # ===== Totals =====

    async def resync(self, period_ids: Iterable[UUID], force: bool = False) -> dict[UUID, PeriodTotals]:
        """Re-aggregate exactly the given periods.

        All periods are checked before any is written, so a verified period in
        the batch rejects the whole call unless force is set.
        """
        periods = [await self.store.get_period(pid) for pid in period_ids]
        if not force:
            for period in periods:
                if not PayPeriodStateMachine.can_recalculate(period.status):
                    raise PeriodLockedError(period.pay_period_id, "recalculate totals")

        results = {}
        for period in periods:
            results[period.pay_period_id] = await self.aggregate_period(period.pay_period_id, force=force)
        if force:
            logger.warning("Forced resync of %d pay period(s)", len(periods))
        return results

    async def aggregate_period(self, pay_period_id: UUID, force: bool = False) -> PeriodTotals:
        """Recompute a period's totals from source records and store them."""
        period = await self.store.get_period(pay_period_id)
        if not force and not PayPeriodStateMachine.can_recalculate(period.status):
            raise PeriodLockedError(pay_period_id, "recalculate totals")

        async with self.locks.period_section(period.user_id, period.start_date):
            await self.store.lock_period(period.user_id, period.start_date)
            totals, shift_results = await self._compute(period)
            for shift, breakdown in shift_results:
                await self.store.persist_shift_result(shift, breakdown)
            await self.store.persist_period_totals(period, totals)

        logger.debug(
            "Aggregated pay period %s: gross=%s tax=%s net=%s",
            pay_period_id,
            totals.gross_pay,
            totals.tax_withheld,
            totals.net_pay,
        )
        return totals

    async def validate_period_totals(self, pay_period_id: UUID) -> TotalsValidation:
        """Compare stored totals with a recomputation (1 cent tolerance)."""
        period = await self.store.get_period(pay_period_id)
        computed, _ = await self._compute(period)
        stored = period.totals()
        return TotalsValidation(
            pay_period_id=pay_period_id,
            stored=stored,
            computed=computed,
            differences=totals_differ(stored, computed),
        )

    async def shift_breakdown(self, shift: Shift) -> PayBreakdown:
        guide = await self.store.load_pay_guide(shift.pay_guide_id)
        rules = await self.store.load_active_rules(shift.pay_guide_id)
        resolver = ShiftPayResolver(guide.to_terms(), self.multiplier_policy)
        return resolver.resolve(shift.to_span(), rules)

    async def _compute(self, period: PayPeriod) -> tuple[PeriodTotals, list[tuple[Shift, PayBreakdown]]]:
        user = await self.store.get_user(period.user_id)
        shift_results = []
        for shift in await self.store.find_shifts_in_period(period.pay_period_id):
            shift_results.append((shift, await self.shift_breakdown(shift)))
        extras = [extra.to_amount() for extra in await self.store.find_extras_in_period(period.pay_period_id)]

        pay_guide_id = shift_results[0][0].pay_guide_id if shift_results else user.default_pay_guide_id
        engine = await self._tax_engine(period, user, pay_guide_id)
        context = await self._tax_context(user, _cadence_of(period))
        totals = PayPeriodAggregator(engine).aggregate(
            (breakdown for _, breakdown in shift_results), extras, context
        )
        return totals, shift_results

    async def _tax_context(self, user: AppUser, cadence: Cadence) -> TaxContext:
        settings = await self.store.load_tax_settings(user.user_id)
        profile = settings.to_profile() if settings is not None else TaxProfile()
        return TaxContext(
            scale=select_scale(profile),
            has_levy=profile.has_study_loan,
            cadence=cadence,
            levy_scale=select_levy_scale(profile),
        )

    async def _tax_engine(
        self, period: PayPeriod, user: AppUser, pay_guide_id: UUID | None
    ) -> TaxWithholdingEngine:
        # Same zone the period boundaries were cut in.
        zone = await self._zone_for(user, pay_guide_id)
        tax_year = self.tax_year or tax_year_for(self.boundaries.resolver.local_date(period.start_date, zone))
        table, levy_table = await self.store.load_coefficient_tables(tax_year)
        if not table.scales:
            logger.warning("No coefficient table stored for %s; using built-in defaults", tax_year)
            table, levy_table = default_coefficient_table(tax_year), default_levy_table(tax_year)
        return TaxWithholdingEngine(table, levy_table, rounding=self.tax_rounding, debug_log=self.tax_debug)

    # ===== Lifecycle =====

    async def verify_period(self, pay_period_id: UUID) -> PayPeriod:
        """Recompute totals one last time, then lock the period."""
        period = await self.store.get_period(pay_period_id)
        PayPeriodStateMachine.validate_transition(period.status, PayPeriodStatus.VERIFIED)
        await self.aggregate_period(pay_period_id)
        await self.store.set_period_status(period, PayPeriodStatus.VERIFIED.value, utcnow())
        logger.info("Verified pay period %s", pay_period_id)
        return period

    async def reopen_period(self, pay_period_id: UUID) -> PayPeriod:
        period = await self.store.get_period(pay_period_id)
        PayPeriodStateMachine.validate_transition(period.status, PayPeriodStatus.OPEN)
        await self.store.set_period_status(period, PayPeriodStatus.OPEN.value, None)
        logger.info("Reopened pay period %s", pay_period_id)
        return period


def _cadence_of(period: PayPeriod) -> Cadence:
    """Cadence implied by a period's length (DST may add or remove an hour)."""
    days = (period.end_date - period.start_date + timedelta(hours=12)).days
    if days == 7:
        return Cadence.WEEKLY
    if days == 14:
        return Cadence.FORTNIGHTLY
    return Cadence.MONTHLY
