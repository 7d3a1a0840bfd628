"""Pydantic models for waiting-list demand and match results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_engine.timeutils import to_iso, to_minutes


class WaitingStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"


class Contact(BaseModel):
    name: str = ""
    phone: str = ""


class WaitingListEntry(BaseModel):
    """A client waiting for any opening inside a preferred time window.

    Window bounds and duration may be missing on entries created by older
    clients; the matcher falls back to configured defaults for those.
    """

    id: str
    business_id: str = ""
    date: str  # YYYY-MM-DD
    from_time: Optional[str] = None  # HH:MM
    to_time: Optional[str] = None  # HH:MM
    service_duration_minutes: Optional[int] = Field(default=None, gt=0)
    service_name: str = ""
    status: WaitingStatus = WaitingStatus.WAITING
    contact: Contact = Contact()

    created_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    notified_time: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _normalise_date(cls, value):
        iso = to_iso(value)
        if iso is None:
            raise ValueError(f"Invalid waiting-list date: {value!r}")
        return iso

    @field_validator("from_time", "to_time")
    @classmethod
    def _check_window(cls, value: Optional[str]) -> Optional[str]:
        if value:
            to_minutes(value)
        return value or None


class MatchResult(BaseModel):
    """Outcome of one waiting-list pass after a freeing event."""

    notified: int = 0
    skipped: int = 0
