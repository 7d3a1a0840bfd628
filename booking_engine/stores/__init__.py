"""Store and notifier abstractions and in-memory implementations."""

from .base import (
    BookingStore,
    BookingStoreError,
    NotificationResult,
    Notifier,
    ScheduleStore,
    WaitingListStore,
)
from .memory import InMemoryBookingStore, InMemoryScheduleStore, InMemoryWaitingListStore

__all__ = [
    "BookingStore",
    "BookingStoreError",
    "InMemoryBookingStore",
    "InMemoryScheduleStore",
    "InMemoryWaitingListStore",
    "NotificationResult",
    "Notifier",
    "ScheduleStore",
    "WaitingListStore",
]
