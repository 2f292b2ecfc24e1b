"""Lifecycle decisions for fixtures expressed in local civil date and time.

Upstream listings give kickoff as a short day/month date plus an hour:minute
time in a fixed civil timezone. Every helper here is total: unparsable input
yields "not expired" and "not active" so malformed fixtures stay visible.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from app.domain import FixtureRef, LifecycleState

DEFAULT_TIMEZONE = ZoneInfo("Europe/Paris")
DEFAULT_GRACE = timedelta(hours=4)
DEFAULT_LIVE_WINDOW = timedelta(minutes=150)

_DAY_MONTH = re.compile(r"^\s*(\d{1,2})\s*[/\-.]\s*(\d{1,2})\s*$")
_EXPLICIT_YEAR = re.compile(r"\d{4}")
_CLOCK = re.compile(r"^\s*(\d{1,2})\s*(?:[:hH.]\s*(\d{2})?)?\s*$")
_ROLLOVER_DAYS = 183
_LATE_NIGHT_CUTOFF = 10


def parse_clock(value: str | None) -> time | None:
    """Parse ``HH:MM``, ``HHhMM`` or ``HHh`` into a time of day."""

    if not value:
        return None
    match = _CLOCK.match(str(value))
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def _nearest_year(day: int, month: int, reference: date) -> date | None:
    candidates: list[date] = []
    for year in (reference.year - 1, reference.year, reference.year + 1):
        try:
            candidates.append(date(year, month, day))
        except ValueError:
            continue
    if not candidates:
        return None
    current = next((item for item in candidates if item.year == reference.year), None)
    if current is not None and abs((current - reference).days) <= _ROLLOVER_DAYS:
        return current
    return min(candidates, key=lambda item: abs((item - reference).days))


def parse_civil_date(value: str | None, reference: date) -> date | None:
    """Resolve a day/month date against the civil year of ``reference``.

    Dates more than roughly six months away from the reference are moved to the
    adjacent year, so ``31/12`` seen on January 2nd resolves to last year and
    ``01/01`` seen on December 31st resolves to next year.
    """

    if not value:
        return None
    text = str(value).strip()
    match = _DAY_MONTH.match(text)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        if not (1 <= day <= 31 and 1 <= month <= 12):
            return None
        return _nearest_year(day, month, reference)
    try:
        parsed = date_parser.parse(
            text,
            dayfirst=not text[:4].isdigit(),
            default=datetime(reference.year, 1, 1),
        )
    except (ValueError, OverflowError, TypeError):
        return None
    if _EXPLICIT_YEAR.search(text):
        return parsed.date()
    return _nearest_year(parsed.day, parsed.month, reference)


def _as_civil(now: datetime, zone: tzinfo) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def kickoff_instant(
    date_text: str | None,
    time_text: str | None,
    now: datetime,
    *,
    zone: tzinfo = DEFAULT_TIMEZONE,
) -> datetime | None:
    civil_now = _as_civil(now, zone)
    kickoff_date = parse_civil_date(date_text, civil_now.date())
    kickoff_time = parse_clock(time_text)
    if kickoff_date is None or kickoff_time is None:
        return None
    return datetime.combine(kickoff_date, kickoff_time, tzinfo=zone)


@dataclass(frozen=True, slots=True)
class TemporalGate:
    """Lifecycle policy: civil timezone, expiry grace, and live window."""

    zone: tzinfo = DEFAULT_TIMEZONE
    grace: timedelta = DEFAULT_GRACE
    live_window: timedelta = DEFAULT_LIVE_WINDOW

    def is_expired(self, date_text: str | None, time_text: str | None, now: datetime) -> bool:
        kickoff = kickoff_instant(date_text, time_text, now, zone=self.zone)
        if kickoff is None:
            return False
        # Same-zone aware arithmetic ignores DST offsets, so compare in UTC.
        instant = _as_civil(now, self.zone).astimezone(timezone.utc)
        return instant > kickoff.astimezone(timezone.utc) + self.grace

    def is_active(self, date_text: str | None, time_text: str | None, now: datetime) -> bool:
        kickoff = kickoff_instant(date_text, time_text, now, zone=self.zone)
        if kickoff is None:
            return False
        instant = _as_civil(now, self.zone).astimezone(timezone.utc)
        start = kickoff.astimezone(timezone.utc)
        return start <= instant < start + self.live_window

    def lifecycle_state(
        self, date_text: str | None, time_text: str | None, now: datetime
    ) -> LifecycleState:
        if self.is_expired(date_text, time_text, now):
            return LifecycleState.EXPIRED
        if self.is_active(date_text, time_text, now):
            return LifecycleState.ACTIVE
        return LifecycleState.SCHEDULED

    def refresh(self, fixtures: Iterable[FixtureRef], now: datetime) -> list[FixtureRef]:
        """Recompute lifecycle states and drop expired fixtures."""

        refreshed: list[FixtureRef] = []
        for fixture in fixtures:
            state = self.lifecycle_state(fixture.scheduled_date, fixture.scheduled_time, now)
            if state is LifecycleState.EXPIRED:
                continue
            refreshed.append(fixture.with_lifecycle(state))
        return refreshed


_DEFAULT_GATE = TemporalGate()


def is_expired(date_text: str | None, time_text: str | None, now: datetime) -> bool:
    return _DEFAULT_GATE.is_expired(date_text, time_text, now)


def is_active(date_text: str | None, time_text: str | None, now: datetime) -> bool:
    return _DEFAULT_GATE.is_active(date_text, time_text, now)


def _sort_key(fixture: FixtureRef) -> tuple[int, int, int, str]:
    live_rank = 0 if fixture.lifecycle_state is LifecycleState.ACTIVE else 1
    clock = parse_clock(fixture.scheduled_time)
    if clock is None:
        return (live_rank, 1, 0, fixture.scheduled_time or "")
    # Early-morning kickoffs belong to the previous evening's slate.
    hour = clock.hour + 24 if clock.hour < _LATE_NIGHT_CUTOFF else clock.hour
    return (live_rank, 0, hour * 60 + clock.minute, fixture.scheduled_time)


def sort_fixtures(fixtures: Iterable[FixtureRef]) -> list[FixtureRef]:
    """Order fixtures with active ones first, then by kickoff across midnight."""

    return sorted(fixtures, key=_sort_key)


__all__ = [
    "DEFAULT_GRACE",
    "DEFAULT_LIVE_WINDOW",
    "DEFAULT_TIMEZONE",
    "TemporalGate",
    "is_active",
    "is_expired",
    "kickoff_instant",
    "parse_civil_date",
    "parse_clock",
    "sort_fixtures",
]
