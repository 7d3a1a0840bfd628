"""Abstract base classes for the engine's external collaborators.

The engine never persists anything itself.  Bookings, schedules and the
waiting list live in whatever backend the application uses (a database, a
hosted BaaS, …) and notifications go out through some message gateway.
Each backend implements the matching ABC below.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.schedule import ScheduleOverride, StaffMember
from booking_engine.models.waiting_list import Contact, WaitingListEntry, WaitingStatus


@dataclass
class NotificationResult:
    """Outcome of one notifier dispatch."""

    success: bool
    error: str = ""


class BookingStoreError(RuntimeError):
    """A booking store read or write failed."""


class BookingStore(ABC):
    """Placed bookings, queried per staff member or per business."""

    @abstractmethod
    async def list_bookings(
        self,
        *,
        staff_id: Optional[str] = None,
        business_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> list[Booking]:
        """Return bookings matching every given filter.

        Args:
            staff_id: Only bookings assigned to this staff member.
            business_id: Only bookings of this business.
            date: ISO ``YYYY-MM-DD`` date.

        Returns:
            Bookings of any status; callers filter by status themselves.
        """

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return one booking, or None if it does not exist."""

    @abstractmethod
    async def update_booking(
        self,
        booking_id: str,
        *,
        date: Optional[str] = None,
        time: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> Booking:
        """Write new date/time/status onto an existing booking.

        Returns:
            The updated booking.

        Raises:
            BookingStoreError: if the write could not be applied.
        """


class ScheduleStore(ABC):
    """Weekly templates and date overrides."""

    @abstractmethod
    async def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        """Return the staff member with their weekly template."""

    @abstractmethod
    async def list_overrides(
        self,
        *,
        staff_id: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> list[ScheduleOverride]:
        """Return overrides relevant to ``staff_id`` (including global ones)."""


class WaitingListStore(ABC):
    """Unmet demand registered by clients."""

    @abstractmethod
    async def list_entries(
        self,
        *,
        business_id: Optional[str] = None,
        date: Optional[str] = None,
        status: Optional[WaitingStatus] = None,
    ) -> list[WaitingListEntry]:
        """Return entries matching every given filter, in store order."""

    @abstractmethod
    async def mark_notified(
        self,
        entry_id: str,
        time: str,
        expected_status: WaitingStatus = WaitingStatus.WAITING,
    ) -> bool:
        """Conditionally move an entry to ``notified``.

        The transition only happens if the entry is still in
        ``expected_status``.

        Returns:
            True if this call performed the transition, False if the entry
            was already notified (or no longer exists).
        """

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry.  Returns True if something was deleted."""


class Notifier(ABC):
    """Message gateway used to tell waiting clients about an opening."""

    @abstractmethod
    async def send_waiting_list_notification(
        self,
        contact: Contact,
        date: str,
        time: str,
        service_name: str = "",
    ) -> NotificationResult:
        """Send a "slot opened" message to ``contact``.

        Failures are reported through the result rather than raised.
        """
