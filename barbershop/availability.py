"""
Slot availability for a single barber on a single day.

The resolver is a pure function: callers fetch a point-in-time snapshot of
bookings and leave requests, turn them into ``Engagement`` intervals and ask
which grid start times can still take a service of the given length.

Intervals are half-open ``[start, end)`` in minutes since midnight, so a
booking ending at 11:00 does not collide with one starting at 11:00.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for an ``"HH:MM"`` string."""
    text = str(value).strip()
    hours, sep, minutes = text.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Malformed time: {value!r}")
    if int(hours) > 23 or int(minutes) > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def shop_weekday(value: date) -> int:
    """Weekday with Sunday as 0, the convention used for barber off-days."""
    return value.isoweekday() % 7


@dataclass(frozen=True)
class Engagement:
    start_minute: int
    end_minute: int
    full_day: bool = False

    @classmethod
    def whole_day(cls) -> Engagement:
        return cls(start_minute=0, end_minute=MINUTES_PER_DAY, full_day=True)

    @classmethod
    def from_start(
        cls,
        start_time: str,
        duration_minutes: int | None,
        default_duration: int = 60,
    ) -> Engagement:
        start = parse_hhmm(start_time)
        duration = duration_minutes if duration_minutes and duration_minutes > 0 else default_duration
        return cls(start_minute=start, end_minute=start + duration)

    def overlaps(self, start_minute: int, end_minute: int) -> bool:
        if self.full_day:
            return True
        return start_minute < self.end_minute and end_minute > self.start_minute


@dataclass(frozen=True)
class OperatingHours:
    starts: tuple[int, ...]
    closing: int

    @classmethod
    def hourly_grid(
        cls,
        first_start: int,
        last_start: int,
        closing: int,
        step: int = 60,
    ) -> OperatingHours:
        if step <= 0:
            raise ValueError("Grid step must be positive")
        return cls(starts=tuple(range(first_start, last_start + 1, step)), closing=closing)

    @classmethod
    def from_times(cls, starts: Iterable[str], closing: str) -> OperatingHours:
        return cls(
            starts=tuple(sorted(parse_hhmm(item) for item in starts)),
            closing=parse_hhmm(closing),
        )

    def contains(self, start_time: str) -> bool:
        try:
            return parse_hhmm(start_time) in self.starts
        except ValueError:
            return False


class _TimedBooking(Protocol):
    booking_id: str
    time: str
    duration_min: int | None


class _TimedLeave(Protocol):
    leave_id: str
    start_time: str | None
    duration_min: int | None

    @property
    def is_full_day(self) -> bool: ...


def overlaps_any(start_minute: int, end_minute: int, engagements: Iterable[Engagement]) -> bool:
    return any(item.overlaps(start_minute, end_minute) for item in engagements)


def booking_engagements(
    bookings: Iterable[_TimedBooking],
    default_duration: int = 60,
) -> list[Engagement]:
    items: list[Engagement] = []
    for booking in bookings:
        try:
            items.append(Engagement.from_start(booking.time, booking.duration_min, default_duration))
        except ValueError:
            logger.warning(
                "Ignoring booking %s with malformed time %r",
                booking.booking_id,
                booking.time,
            )
    return items


def leave_engagements(
    leaves: Iterable[_TimedLeave],
    default_duration: int = 60,
) -> list[Engagement]:
    items: list[Engagement] = []
    for leave in leaves:
        if leave.is_full_day:
            items.append(Engagement.whole_day())
            continue
        if not leave.start_time:
            logger.warning("Ignoring short break %s without a start time", leave.leave_id)
            continue
        try:
            items.append(Engagement.from_start(leave.start_time, leave.duration_min, default_duration))
        except ValueError:
            logger.warning(
                "Ignoring short break %s with malformed start %r",
                leave.leave_id,
                leave.start_time,
            )
    return items


def resolve_available_slots(
    value_date: date,
    service_duration_minutes: int,
    engagements: Iterable[Engagement],
    hours: OperatingHours,
    *,
    weekly_off_days: Iterable[int] = (),
    is_today: bool = False,
    now: time | datetime | None = None,
    buffer_minutes: int = 30,
) -> list[str]:
    """
    Return the grid start times at which a new booking can begin.

    A start ``s`` is kept when ``s + duration`` fits before closing, it does
    not overlap any engagement, and, on the current day, it is at least
    ``buffer_minutes`` after ``now``. A weekly off-day or a full-day leave
    empties the whole day. Output keeps the order of ``hours.starts``.
    """
    if service_duration_minutes <= 0:
        raise ValueError("Service duration must be a positive number of minutes")
    if shop_weekday(value_date) in set(weekly_off_days):
        return []

    blocking = set(engagements)
    if any(item.full_day for item in blocking):
        return []

    earliest: float | None = None
    if is_today:
        if now is None:
            raise ValueError("Current time is required when resolving today's slots")
        earliest = now.hour * 60 + now.minute + now.second / 60 + buffer_minutes

    available: list[str] = []
    for start in hours.starts:
        end = start + service_duration_minutes
        if end > hours.closing:
            continue
        if earliest is not None and start < earliest:
            continue
        if overlaps_any(start, end, blocking):
            continue
        available.append(format_hhmm(start))
    return available
