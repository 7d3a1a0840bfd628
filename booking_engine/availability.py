"""Slot availability and conflict checks over an effective schedule.

All functions here are pure: bookings, overrides and templates are passed
in already loaded.  Intervals are half-open ``[start, start + duration)``
in minutes since midnight, so a booking ending at 10:00 never conflicts
with one starting at 10:00.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from booking_engine.models.booking import Booking
from booking_engine.models.schedule import ScheduleOverride, StaffMember
from booking_engine.resolver import ScheduleResolver
from booking_engine.timeutils import DateLike, minutes_to_time, to_iso, to_minutes

log = logging.getLogger("booking_engine.availability")

DEFAULT_SLOT_INTERVAL = 15


def _check_duration(duration: int) -> None:
    if duration <= 0:
        raise ValueError(f"Duration must be positive (got {duration})")


def _check_interval(interval: int) -> None:
    if interval <= 0:
        raise ValueError(f"Slot interval must be positive (got {interval})")


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


def is_slot_available(
    time: str,
    duration: int,
    bookings: Iterable[Booking],
    ignore_id: Optional[str] = None,
) -> bool:
    """True iff ``[time, time + duration)`` overlaps no occupying booking.

    Cancelled bookings, the booking named by ``ignore_id`` (the one being
    rescheduled) and bookings without a time never conflict.
    """
    _check_duration(duration)
    slot_start = to_minutes(time)
    slot_end = slot_start + duration

    for booking in bookings:
        if ignore_id is not None and booking.id == ignore_id:
            continue
        if not booking.is_active or booking.start_minutes is None:
            continue
        if overlaps(slot_start, slot_end, booking.start_minutes, booking.end_minutes):
            return False
    return True


def find_first_available_slot(
    range_start: str,
    range_end: str,
    duration: int,
    bookings: Sequence[Booking],
    interval: int = DEFAULT_SLOT_INTERVAL,
    ignore_id: Optional[str] = None,
) -> Optional[str]:
    """First ``HH:MM`` in ``[range_start, range_end)`` where the full duration fits."""
    _check_duration(duration)
    _check_interval(interval)
    start = to_minutes(range_start)
    end = to_minutes(range_end)

    minutes = start
    while minutes + duration <= end:
        candidate = minutes_to_time(minutes)
        if is_slot_available(candidate, duration, bookings, ignore_id):
            return candidate
        minutes += interval
    return None


def bookings_on(date: DateLike, bookings: Iterable[Booking]) -> list[Booking]:
    """Select the bookings placed on ``date`` (any supported date format)."""
    date_iso = to_iso(date)
    return [b for b in bookings if b.date == date_iso]


class SlotAvailabilityCalculator:
    """Bookable-slot enumeration on top of :class:`ScheduleResolver`.

    Each shift of the effective schedule is scanned on its own, so a slot
    never straddles the gap between two shifts (a lunch break, say).
    """

    def __init__(
        self,
        resolver: ScheduleResolver | None = None,
        slot_interval: int = DEFAULT_SLOT_INTERVAL,
    ) -> None:
        self._resolver = resolver or ScheduleResolver()
        _check_interval(slot_interval)
        self._slot_interval = slot_interval

    @property
    def resolver(self) -> ScheduleResolver:
        return self._resolver

    # Exposed on the instance so callers holding a calculator share one primitive
    is_slot_available = staticmethod(is_slot_available)

    def get_available_slots(
        self,
        date: DateLike,
        staff: Optional[StaffMember],
        duration: int,
        bookings: Sequence[Booking],
        overrides: Iterable[ScheduleOverride] = (),
        ignore_id: Optional[str] = None,
        interval: Optional[int] = None,
    ) -> list[str]:
        """Return every bookable start time for ``duration`` on ``date``, ascending."""
        _check_duration(duration)
        step = self._slot_interval if interval is None else interval
        _check_interval(step)

        schedule = self._resolver.resolve(date, staff, overrides)
        if schedule is None or not schedule.enabled:
            return []

        slots: list[str] = []
        for shift in sorted(schedule.shifts, key=lambda s: s.start_minutes):
            minutes = shift.start_minutes
            while minutes + duration <= shift.end_minutes:
                candidate = minutes_to_time(minutes)
                if is_slot_available(candidate, duration, bookings, ignore_id):
                    slots.append(candidate)
                minutes += step

        log.debug(
            "%d slots for staff=%s date=%s duration=%d",
            len(slots), staff.id if staff else None, to_iso(date), duration,
        )
        return slots

    def get_available_dates(
        self,
        dates: Iterable[DateLike],
        staff: Optional[StaffMember],
        duration: int,
        bookings: Sequence[Booking],
        overrides: Sequence[ScheduleOverride] = (),
    ) -> list[DateLike]:
        """Keep the dates that have at least one bookable slot."""
        available = []
        for date in dates:
            day_bookings = bookings_on(date, bookings)
            if self.get_available_slots(date, staff, duration, day_bookings, overrides):
                available.append(date)
        return available

    def has_available_slots_in_range(
        self,
        date: DateLike,
        staff: Optional[StaffMember],
        duration: int,
        from_time: str,
        to_time: str,
        bookings: Sequence[Booking],
        overrides: Iterable[ScheduleOverride] = (),
    ) -> bool:
        """True if any slot fits inside ``[from_time, to_time)`` on ``date``.

        The preferred range is clamped against each shift separately rather
        than against the first-start/last-end span of the day.
        """
        _check_duration(duration)
        schedule = self._resolver.resolve(date, staff, overrides)
        if schedule is None or not schedule.enabled:
            return False

        range_start = to_minutes(from_time)
        range_end = to_minutes(to_time)
        for shift in schedule.shifts:
            start = max(range_start, shift.start_minutes)
            end = min(range_end, shift.end_minutes)
            if end - start < duration:
                continue
            found = find_first_available_slot(
                minutes_to_time(start),
                minutes_to_time(end),
                duration,
                bookings,
                interval=self._slot_interval,
            )
            if found:
                return True
        return False
