"""Pydantic models for working hours, overrides and the resolved schedule."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from booking_engine.timeutils import to_iso, to_minutes


class Shift(BaseModel):
    """A contiguous working interval ``[start, end)`` within one day."""

    start: str  # HH:MM
    end: str  # HH:MM

    @field_validator("start", "end")
    @classmethod
    def _check_time(cls, value: str) -> str:
        to_minutes(value)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "Shift":
        if self.start_minutes >= self.end_minutes:
            raise ValueError(f"Shift start {self.start} must be before end {self.end}")
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)


class DaySchedule(BaseModel):
    """One weekday entry of a staff member's working-hours template.

    Older records carry a single ``start``/``end`` pair instead of a
    ``shifts`` list.  Both shapes are accepted here; the resolver turns
    the legacy pair into a one-element shift list.
    """

    enabled: bool = True
    shifts: list[Shift] = []

    # Legacy single-range shape
    start: Optional[str] = None
    end: Optional[str] = None


class StaffMember(BaseModel):
    """A bookable provider and their recurring weekly template."""

    id: str
    name: str = ""
    business_id: str = ""
    schedule: dict[str, DaySchedule] = {}  # weekday key -> entry


class ScheduleOverride(BaseModel):
    """A date-scoped replacement of the weekly template.

    ``staff_id=None`` applies to every staff member of the business unless
    a staff-specific override exists for the same date.
    """

    date: str  # YYYY-MM-DD
    staff_id: Optional[str] = None
    is_day_off: bool = False
    shifts: list[Shift] = []
    note: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _normalise_date(cls, value):
        iso = to_iso(value)
        if iso is None:
            raise ValueError(f"Invalid override date: {value!r}")
        return iso


class EffectiveSchedule(BaseModel):
    """The resolved working shifts for one (date, staff) pair."""

    enabled: bool
    shifts: list[Shift] = []

    @property
    def start(self) -> str | None:
        return self.shifts[0].start if self.shifts else None

    @property
    def end(self) -> str | None:
        return self.shifts[-1].end if self.shifts else None
