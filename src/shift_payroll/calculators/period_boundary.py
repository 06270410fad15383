"""Pay period boundary calculation for weekly, fortnightly and monthly cadences."""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Any

from shift_payroll.calculators.timezone_resolver import UTC, TimeZoneResolver, ensure_utc
from shift_payroll.calculators.types import Cadence, PeriodBoundary

# 1970-01-05 was a Monday; fortnights are counted from it.
FORTNIGHT_ANCHOR = date(1970, 1, 5)
END_OF_DAY = time(23, 59, 59, 999000)


class UnsupportedCadenceError(Exception):
    """Raised for a cadence outside weekly/fortnightly/monthly."""

    def __init__(self, cadence: Any):
        self.cadence = cadence
        super().__init__(f"Unsupported pay period type: {cadence!r}")


def parse_cadence(value: Cadence | str) -> Cadence:
    """Normalize a cadence value, raising UnsupportedCadenceError if unknown."""
    if isinstance(value, Cadence):
        return value
    if isinstance(value, str):
        try:
            return Cadence(value.strip().upper())
        except ValueError:
            pass
    raise UnsupportedCadenceError(value)


class PeriodBoundaryCalculator:
    """Maps an instant to the inclusive [start, end] of its enclosing pay period.

    Without a zone the cadence math runs on UTC calendar days. With a zone the
    instant's local civil date is projected onto a UTC anchor (same wall clock
    as local midnight), the UTC math runs on that anchor, and each resulting
    boundary is shifted back by the zone offset in effect at that boundary.
    Start and end are corrected separately because a DST change inside the
    period gives them different offsets.
    """

    def __init__(self, resolver: TimeZoneResolver | None = None):
        self.resolver = resolver or TimeZoneResolver()

    def period_for(
        self,
        instant: datetime,
        cadence: Cadence | str,
        zone: str | None = None,
    ) -> PeriodBoundary:
        cadence = parse_cadence(cadence)

        if not zone:
            return self._utc_period(ensure_utc(instant), cadence)

        local_day = self.resolver.local_date(instant, zone)
        anchor = UTC.localize(datetime.combine(local_day, time.min))
        wall = self._utc_period(anchor, cadence)

        return PeriodBoundary(
            start=self._wall_boundary_to_utc(wall.start, zone),
            end=self._wall_boundary_to_utc(wall.end, zone),
        )

    def _wall_boundary_to_utc(self, boundary: datetime, zone: str) -> datetime:
        # Offset is resolved at this boundary's own wall time. A midnight
        # skipped by a spring-forward maps to the first instant of that day.
        return self.resolver.wall_to_utc(boundary, zone)

    def _utc_period(self, instant: datetime, cadence: Cadence) -> PeriodBoundary:
        day = instant.date()
        if cadence is Cadence.WEEKLY:
            return self.weekly(day)
        if cadence is Cadence.FORTNIGHTLY:
            return self.fortnightly(day)
        if cadence is Cadence.MONTHLY:
            return self.monthly(day)
        raise UnsupportedCadenceError(cadence)

    @staticmethod
    def weekly(day: date) -> PeriodBoundary:
        """Monday-to-Sunday week containing day."""
        start_day = day - timedelta(days=day.weekday())
        return _boundary(start_day, start_day + timedelta(days=6))

    @staticmethod
    def fortnightly(day: date) -> PeriodBoundary:
        """14-day block counted from the 1970-01-05 anchor Monday."""
        days_since_anchor = (day - FORTNIGHT_ANCHOR).days
        start_day = day - timedelta(days=days_since_anchor % 14)
        return _boundary(start_day, start_day + timedelta(days=13))

    @staticmethod
    def monthly(day: date) -> PeriodBoundary:
        """Calendar month containing day."""
        last = calendar.monthrange(day.year, day.month)[1]
        return _boundary(day.replace(day=1), day.replace(day=last))


def _boundary(first_day: date, last_day: date) -> PeriodBoundary:
    return PeriodBoundary(
        start=UTC.localize(datetime.combine(first_day, time.min)),
        end=UTC.localize(datetime.combine(last_day, END_OF_DAY)),
    )


def calculate_period_boundary(
    instant: datetime,
    cadence: Cadence | str,
    zone: str | None = None,
) -> PeriodBoundary:
    """Module-level shortcut for PeriodBoundaryCalculator().period_for."""
    return PeriodBoundaryCalculator().period_for(instant, cadence, zone)
