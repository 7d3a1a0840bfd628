"""Resolve the effective working shifts for one staff member on one date.

Precedence:

  1. A date override for this staff member, else a global (``staff_id=None``)
     override for the date.  When present it is the sole source of truth:
     day off → disabled, custom shifts → those shifts verbatim.
  2. Otherwise the weekly template entry for the date's weekday.

Legacy template entries with a single ``start``/``end`` pair are normalised
to a one-element shift list here so nothing downstream has to branch on the
record shape.  Missing or malformed data resolves to "no availability"
(``None`` or a disabled schedule), never an exception.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from booking_engine.models.schedule import (
    DaySchedule,
    EffectiveSchedule,
    ScheduleOverride,
    Shift,
    StaffMember,
)
from booking_engine.timeutils import DateLike, day_key, to_iso

log = logging.getLogger("booking_engine.resolver")


def find_override(
    date_iso: str,
    staff_id: str,
    overrides: Iterable[ScheduleOverride],
) -> Optional[ScheduleOverride]:
    """Return the authoritative override for (date, staff), staff-specific first."""
    global_match: Optional[ScheduleOverride] = None
    for override in overrides:
        if override.date != date_iso:
            continue
        if override.staff_id == staff_id:
            return override
        if override.staff_id is None and global_match is None:
            global_match = override
    return global_match


def normalize_day(entry: DaySchedule) -> Optional[EffectiveSchedule]:
    """Turn a template entry (current or legacy shape) into an EffectiveSchedule."""
    if entry.shifts:
        return EffectiveSchedule(enabled=entry.enabled, shifts=list(entry.shifts))

    if entry.start and entry.end:
        try:
            shift = Shift(start=entry.start, end=entry.end)
        except ValidationError:
            log.warning("Ignoring malformed legacy range %s-%s", entry.start, entry.end)
            return None
        return EffectiveSchedule(enabled=entry.enabled, shifts=[shift])

    if not entry.enabled:
        return EffectiveSchedule(enabled=False, shifts=[])
    return None


class ScheduleResolver:
    """Resolves EffectiveSchedule values from already-loaded template/override data."""

    def resolve(
        self,
        date: DateLike,
        staff: Optional[StaffMember],
        overrides: Iterable[ScheduleOverride] = (),
    ) -> Optional[EffectiveSchedule]:
        if staff is None:
            return None
        date_iso = to_iso(date)
        if date_iso is None:
            return None

        override = find_override(date_iso, staff.id, overrides)
        if override is not None:
            if override.is_day_off:
                return EffectiveSchedule(enabled=False, shifts=[])
            if override.shifts:
                return EffectiveSchedule(enabled=True, shifts=list(override.shifts))
            # An override with neither flag nor shifts still replaces the template
            log.debug("Empty override for %s/%s treated as closed", date_iso, staff.id)
            return EffectiveSchedule(enabled=False, shifts=[])

        key = day_key(date_iso)
        entry = staff.schedule.get(key) if key else None
        if entry is None:
            return None
        return normalize_day(entry)


_default_resolver = ScheduleResolver()


def resolve(
    date: DateLike,
    staff: Optional[StaffMember],
    overrides: Iterable[ScheduleOverride] = (),
) -> Optional[EffectiveSchedule]:
    """Module-level shortcut for ``ScheduleResolver().resolve``."""
    return _default_resolver.resolve(date, staff, overrides)
