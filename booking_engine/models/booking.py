"""Pydantic models for placed bookings and reschedule intents."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_engine.timeutils import to_iso, to_minutes


class BookingStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold their time on the calendar
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING_APPROVAL, BookingStatus.CONFIRMED})


class Booking(BaseModel):
    """An appointment already placed on a staff member's calendar."""

    id: str
    staff_id: Optional[str] = None
    business_id: str = ""
    date: str  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    duration_minutes: int = Field(default=30, gt=0)
    status: BookingStatus = BookingStatus.CONFIRMED

    client_name: str = ""
    service_name: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _normalise_date(cls, value):
        iso = to_iso(value)
        if iso is None:
            raise ValueError(f"Invalid booking date: {value!r}")
        return iso

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: Optional[str]) -> Optional[str]:
        if value:
            to_minutes(value)
        return value or None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def start_minutes(self) -> int | None:
        return to_minutes(self.time) if self.time else None

    @property
    def end_minutes(self) -> int | None:
        start = self.start_minutes
        return None if start is None else start + self.duration_minutes


class RescheduleIntent(BaseModel):
    """Request to move an existing booking to a new (date, time) cell."""

    booking_id: str
    new_date: str  # YYYY-MM-DD
    new_time: str  # HH:MM
