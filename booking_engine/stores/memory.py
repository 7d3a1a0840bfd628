"""In-memory store implementations.

Used by the FastAPI app when no external backend is wired in, and by the
tests.  All methods complete without awaiting anything, so each call is
atomic with respect to the event loop; ``mark_notified`` is therefore a
true compare-and-swap for coroutines sharing one store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.schedule import ScheduleOverride, StaffMember
from booking_engine.models.waiting_list import WaitingListEntry, WaitingStatus

from .base import BookingStore, BookingStoreError, ScheduleStore, WaitingListStore

logger = logging.getLogger(__name__)


class InMemoryBookingStore(BookingStore):
    """BookingStore backed by a dict keyed by booking id (insertion ordered)."""

    def __init__(self, bookings: Iterable[Booking] = ()) -> None:
        self._bookings: dict[str, Booking] = {b.id: b for b in bookings}

    def add(self, booking: Booking) -> None:
        self._bookings[booking.id] = booking

    async def list_bookings(
        self,
        *,
        staff_id: Optional[str] = None,
        business_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> list[Booking]:
        return [
            b for b in self._bookings.values()
            if (staff_id is None or b.staff_id == staff_id)
            and (business_id is None or b.business_id == business_id)
            and (date is None or b.date == date)
        ]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    async def update_booking(
        self,
        booking_id: str,
        *,
        date: Optional[str] = None,
        time: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> Booking:
        current = self._bookings.get(booking_id)
        if current is None:
            raise BookingStoreError(f"Booking {booking_id} not found")

        changes: dict = {}
        if date is not None:
            changes["date"] = date
        if time is not None:
            changes["time"] = time
        if status is not None:
            changes["status"] = status
        # Re-validate so a bad date/time never lands in the store
        updated = Booking.model_validate({**current.model_dump(), **changes})
        self._bookings[booking_id] = updated
        logger.info("Updated booking %s: %s", booking_id, changes)
        return updated


class InMemoryScheduleStore(ScheduleStore):
    def __init__(
        self,
        staff: Iterable[StaffMember] = (),
        overrides: Iterable[ScheduleOverride] = (),
    ) -> None:
        self._staff: dict[str, StaffMember] = {s.id: s for s in staff}
        self._overrides: list[ScheduleOverride] = list(overrides)

    def add_override(self, override: ScheduleOverride) -> None:
        self._overrides.append(override)

    async def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        return self._staff.get(staff_id)

    async def list_overrides(
        self,
        *,
        staff_id: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> list[ScheduleOverride]:
        if staff_id is None:
            return list(self._overrides)
        return [o for o in self._overrides if o.staff_id in (staff_id, None)]


class InMemoryWaitingListStore(WaitingListStore):
    def __init__(self, entries: Iterable[WaitingListEntry] = ()) -> None:
        self._entries: dict[str, WaitingListEntry] = {e.id: e for e in entries}

    def add(self, entry: WaitingListEntry) -> None:
        self._entries[entry.id] = entry

    def get(self, entry_id: str) -> Optional[WaitingListEntry]:
        return self._entries.get(entry_id)

    async def list_entries(
        self,
        *,
        business_id: Optional[str] = None,
        date: Optional[str] = None,
        status: Optional[WaitingStatus] = None,
    ) -> list[WaitingListEntry]:
        return [
            e for e in self._entries.values()
            if (business_id is None or e.business_id == business_id)
            and (date is None or e.date == date)
            and (status is None or e.status == status)
        ]

    async def mark_notified(
        self,
        entry_id: str,
        time: str,
        expected_status: WaitingStatus = WaitingStatus.WAITING,
    ) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != expected_status:
            return False
        self._entries[entry_id] = entry.model_copy(update={
            "status": WaitingStatus.NOTIFIED,
            "notified_at": datetime.now(tz=timezone.utc),
            "notified_time": time,
        })
        return True

    async def delete_entry(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None
