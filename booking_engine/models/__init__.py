"""Data models for the availability engine."""

from .booking import Booking, BookingStatus, RescheduleIntent
from .schedule import (
    DaySchedule,
    EffectiveSchedule,
    ScheduleOverride,
    Shift,
    StaffMember,
)
from .waiting_list import Contact, MatchResult, WaitingListEntry, WaitingStatus

__all__ = [
    "Booking",
    "BookingStatus",
    "Contact",
    "DaySchedule",
    "EffectiveSchedule",
    "MatchResult",
    "RescheduleIntent",
    "ScheduleOverride",
    "Shift",
    "StaffMember",
    "WaitingListEntry",
    "WaitingStatus",
]
