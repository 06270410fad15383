"""UTC <-> civil time conversion for named IANA zones."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

import pytz

UTC = pytz.utc


def ensure_utc(instant: datetime) -> datetime:
    """Return instant as an aware UTC datetime (naive values are taken as UTC)."""
    if instant.tzinfo is None:
        return UTC.localize(instant)
    return instant.astimezone(UTC)


class TimeZoneResolver:
    """Converts instants between UTC and a named civil timezone.

    All offset queries use the zone rules in effect at the queried instant,
    so they stay correct across daylight-saving transitions.
    """

    def zone(self, name: str) -> tzinfo:
        return pytz.timezone(name)

    def to_local(self, instant: datetime, zone: str) -> datetime:
        """Project an instant onto the zone's wall clock (aware local datetime)."""
        return ensure_utc(instant).astimezone(self.zone(zone))

    def local_date(self, instant: datetime, zone: str) -> date:
        return self.to_local(instant, zone).date()

    def offset(self, instant: datetime, zone: str) -> timedelta:
        """Signed UTC offset in effect at instant."""
        return self.to_local(instant, zone).utcoffset() or timedelta(0)

    def wall_to_utc(self, wall: datetime, zone: str) -> datetime:
        """Convert a naive local wall time to its UTC instant.

        Ambiguous wall times (clocks going back) resolve to standard time.
        Wall times skipped by a spring-forward resolve with the standard
        offset, so a skipped midnight maps to the first instant of its day.
        """
        naive = wall.replace(tzinfo=None)
        localized = self.zone(zone).localize(naive, is_dst=False)
        return localized.astimezone(UTC)

    def local_midnight(self, instant: datetime, zone: str) -> datetime:
        """UTC instant at which the civil day containing instant begins."""
        local_day = self.local_date(instant, zone)
        return self.wall_to_utc(datetime.combine(local_day, time.min), zone)
