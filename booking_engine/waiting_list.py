"""Waiting-list matching — offer freed capacity to waiting clients.

Called whenever time opens up on a date:
  - a booking is cancelled
  - a booking is rescheduled away
  - a schedule override adds working hours

For each waiting entry on that date whose preferred window overlaps the
freed interval, the first 15-minute-aligned start where the entry's full
service duration fits (against the day's active bookings) is offered to
the client.  Entries are processed in the order the store returns them;
callers wanting first-registered-first-served must sort beforehand (see
``sort_by_registration``).

Duplicate offers are guarded twice: freeing events for the same
(business, date) are serialised inside one process, and the
``waiting → notified`` transition is a compare-and-swap at the store.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date as date_type
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional

from booking_engine.availability import DEFAULT_SLOT_INTERVAL, find_first_available_slot
from booking_engine.config import Settings, settings as default_settings
from booking_engine.models.booking import Booking
from booking_engine.models.waiting_list import MatchResult, WaitingListEntry, WaitingStatus
from booking_engine.stores.base import BookingStore, Notifier, WaitingListStore
from booking_engine.timeutils import (
    DateLike,
    add_minutes,
    minutes_to_time,
    parse_date,
    to_iso,
    to_minutes,
)

log = logging.getLogger("booking_engine.waiting_list")


def redact_pii(value: str) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def sort_by_registration(entries: Iterable[WaitingListEntry]) -> list[WaitingListEntry]:
    """Earliest-registered first; entries without ``created_at`` go last."""
    far_future = datetime.max.replace(tzinfo=timezone.utc)

    def key(entry: WaitingListEntry) -> datetime:
        created = entry.created_at
        if created is None:
            return far_future
        return created if created.tzinfo else created.replace(tzinfo=timezone.utc)

    return sorted(entries, key=key)


def vacated_interval(booking: Booking) -> Optional[tuple[str, str]]:
    """The ``[start, end)`` a booking occupied, cut off at midnight."""
    if not booking.time:
        return None
    end_time = add_minutes(booking.time, booking.duration_minutes)
    if to_minutes(end_time) <= booking.start_minutes:
        return None
    return booking.time, end_time


class WaitingListMatcher:
    """Matches freed intervals against the waiting list and notifies clients."""

    def __init__(
        self,
        waiting_list: WaitingListStore,
        bookings: BookingStore,
        notifier: Notifier,
        config: Settings | None = None,
    ) -> None:
        self._waiting_list = waiting_list
        self._bookings = bookings
        self._notifier = notifier
        self._config = config or default_settings
        # One lock per (business, date) with the number of passes holding or awaiting it
        self._locks: dict[tuple[str, str], tuple[asyncio.Lock, int]] = {}

    # ── Public API ────────────────────────────────────────────

    async def notify_for_freed_interval(
        self,
        business_id: str,
        date: DateLike,
        start_time: str,
        end_time: str,
    ) -> MatchResult:
        """Offer ``[start_time, end_time)`` on ``date`` to matching waiting entries."""
        date_iso = to_iso(date)
        if date_iso is None:
            raise ValueError(f"Invalid date: {date!r}")
        if to_minutes(start_time) >= to_minutes(end_time):
            raise ValueError(f"Freed interval {start_time}-{end_time} is empty")

        async with self._serialised((business_id, date_iso)):
            return await self._match(business_id, date_iso, start_time, end_time)

    async def notify_for_vacated_booking(self, booking: Booking) -> MatchResult:
        """Offer the time ``booking`` occupied before it was cancelled or moved."""
        interval = vacated_interval(booking)
        if interval is None:
            log.info("Booking %s occupied no time; nothing to offer", booking.id)
            return MatchResult()
        start_time, end_time = interval
        return await self.notify_for_freed_interval(
            booking.business_id, booking.date, start_time, end_time,
        )

    async def notify_for_cancelled_booking(self, booking: Booking) -> MatchResult:
        """The cancelled booking's own time range is the freed interval."""
        return await self.notify_for_vacated_booking(booking)

    async def cleanup_expired_entries(
        self,
        business_id: Optional[str] = None,
        today: Optional[date_type] = None,
    ) -> int:
        """Delete waiting entries dated before ``today``.  Returns the count."""
        today = today or datetime.now(tz=timezone.utc).date()
        entries = await self._waiting_list.list_entries(
            business_id=business_id, status=WaitingStatus.WAITING,
        )

        deleted = 0
        for entry in entries:
            entry_date = parse_date(entry.date)
            if entry_date is None or entry_date >= today:
                continue
            try:
                if await self._waiting_list.delete_entry(entry.id):
                    deleted += 1
            except Exception:
                log.exception("Failed to delete expired waiting entry %s", entry.id)

        log.info("Cleaned up %d expired waiting-list entries", deleted)
        return deleted

    # ── Internal ─────────────────────────────────────────────

    @asynccontextmanager
    async def _serialised(self, key: tuple[str, str]) -> AsyncIterator[None]:
        """Run one pass per key at a time; the lock is dropped once unused."""
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    async def _match(
        self, business_id: str, date_iso: str, start_time: str, end_time: str,
    ) -> MatchResult:
        result = MatchResult()
        log.info("Waiting-list check for %s %s-%s", date_iso, start_time, end_time)

        entries = await self._waiting_list.list_entries(
            business_id=business_id, date=date_iso, status=WaitingStatus.WAITING,
        )
        if not entries:
            log.info("No one on the waiting list for %s", date_iso)
            return result

        day_bookings = await self._bookings.list_bookings(
            business_id=business_id, date=date_iso,
        )
        active = [b for b in day_bookings if b.is_active]
        log.info("%d waiting entries, %d active bookings on %s",
                 len(entries), len(active), date_iso)

        freed_start = to_minutes(start_time)
        freed_end = to_minutes(end_time)

        for entry in entries:
            try:
                slot = self._find_slot(entry, freed_start, freed_end, active)
            except ValueError as e:
                log.warning("Skipping malformed waiting entry %s: %s", entry.id, e)
                result.skipped += 1
                continue
            if slot is None:
                result.skipped += 1
                continue

            if await self._offer(entry, date_iso, slot):
                result.notified += 1
            else:
                result.skipped += 1

        log.info("Waiting-list pass for %s complete: %d notified, %d skipped",
                 date_iso, result.notified, result.skipped)
        return result

    def _find_slot(
        self,
        entry: WaitingListEntry,
        freed_start: int,
        freed_end: int,
        active: list[Booking],
    ) -> Optional[str]:
        """First fitting start inside the overlap of the freed and preferred ranges."""
        from_time = entry.from_time or self._config.waiting_list_default_from
        to_time = entry.to_time or self._config.waiting_list_default_to
        duration = entry.service_duration_minutes or self._config.waiting_list_default_duration
        wanted_start, wanted_end = to_minutes(from_time), to_minutes(to_time)

        if freed_end <= wanted_start or freed_start >= wanted_end:
            log.debug("Entry %s: no overlap with %s-%s", entry.id, from_time, to_time)
            return None

        overlap_start = max(freed_start, wanted_start)
        overlap_end = min(freed_end, wanted_end)
        slot = find_first_available_slot(
            minutes_to_time(overlap_start),
            minutes_to_time(overlap_end),
            duration,
            active,
            interval=DEFAULT_SLOT_INTERVAL,
        )
        if slot is None:
            log.debug("Entry %s: %dmin does not fit in the overlap", entry.id, duration)
        return slot

    async def _offer(self, entry: WaitingListEntry, date_iso: str, slot: str) -> bool:
        """Notify one client, then record the transition.  True if notified."""
        phone = redact_pii(entry.contact.phone)
        try:
            sent = await self._notifier.send_waiting_list_notification(
                entry.contact, date_iso, slot, entry.service_name,
            )
        except Exception:
            log.exception("Notifier raised for waiting entry %s (%s)", entry.id, phone)
            return False

        if not sent.success:
            log.warning("Notification to %s failed: %s", phone, sent.error)
            return False

        try:
            transitioned = await self._waiting_list.mark_notified(entry.id, slot)
        except Exception:
            # The message went out; the status write can be repaired later
            log.exception("Failed to mark waiting entry %s as notified", entry.id)
            return True

        if not transitioned:
            log.warning("Waiting entry %s was already notified by a concurrent pass", entry.id)
            return False

        log.info("Notified %s about %s %s", phone, date_iso, slot)
        return True
