"""Async driver for one client's drag-to-reschedule interaction.

The pure :class:`DragCoordinateMapper` decides *what* a pointer position
means; this controller owns the two asynchronous edges around it:

  1. Preview recompute.  The target day's bookings are fetched from the
     store for every move.  Moves can arrive faster than those reads
     complete, so each move takes a sequence number and a result is only
     applied if no newer move has started meanwhile (last-write-wins).
  2. Commit.  On an accepted release the booking's new (date, time) is
     applied to the local calendar view immediately, then written to the
     store.  If the write fails the local view is restored from the ghost
     anchor and a ``failed`` outcome is returned.  Nothing is retried.

Typical lifecycle::

    controller = DragController(mapper, booking_store, staff_id="s1")
    await controller.load(["2026-02-15", "2026-02-16"])
    controller.pick_up("b1", Point(x=120, y=300), element_top=290)
    await controller.move(Point(x=200, y=420), rect, display_days)
    outcome = await controller.release()
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Sequence

from pydantic import BaseModel

from booking_engine.drag.geometry import ContainerRect
from booking_engine.drag.session import (
    DragCoordinateMapper,
    DragSession,
    DragStateError,
    Point,
)
from booking_engine.events import CalendarFeed
from booking_engine.models.booking import Booking
from booking_engine.stores.base import BookingStore
from booking_engine.timeutils import DateLike

log = logging.getLogger("booking_engine.drag.controller")


class CommitOutcome(BaseModel):
    """What happened when the user dropped the booking."""

    status: Literal["committed", "rejected", "failed"]
    reason: str = ""
    booking: Optional[Booking] = None


class DragController:
    """One calendar client's drags, backed by a BookingStore."""

    def __init__(
        self,
        mapper: DragCoordinateMapper,
        store: BookingStore,
        staff_id: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> None:
        self._mapper = mapper
        self._store = store
        self._staff_id = staff_id
        self._business_id = business_id

        # Local calendar view, keyed by booking id
        self._local: dict[str, Booking] = {}

        self._session: DragSession | None = None
        self._move_seq = 0

        self._feed: CalendarFeed | None = None
        self._client_id = ""

    # ── Public API ────────────────────────────────────────────

    @property
    def session(self) -> DragSession | None:
        return self._session

    @property
    def local_bookings(self) -> list[Booking]:
        return list(self._local.values())

    def attach_feed(self, feed: CalendarFeed, client_id: str) -> None:
        """Publish this client's drag events to the calendar's watchers."""
        self._feed = feed
        self._client_id = client_id

    async def load(self, dates: Sequence[str]) -> list[Booking]:
        """Populate the local view with the bookings on ``dates``."""
        for date in dates:
            for booking in await self._fetch(date):
                self._local[booking.id] = booking
        return self.local_bookings

    def pick_up(self, booking_id: str, pointer: Point, element_top: float) -> DragSession:
        if self._session is not None and self._session.is_active:
            raise DragStateError("A drag is already in progress")
        booking = self._local.get(booking_id)
        if booking is None:
            raise KeyError(f"Booking {booking_id} is not on the loaded calendar")

        self._session = self._mapper.pick_up(booking, pointer, element_top)
        self._emit("pick_up", {"date": booking.date, "time": booking.time})
        return self._session

    async def move(
        self,
        pointer: Point,
        rect: ContainerRect,
        display_days: Sequence[DateLike],
    ) -> DragSession | None:
        """Recompute the preview for ``pointer``.

        Returns the updated session, or None when this move was superseded
        by a newer one (or the drag ended) before its bookings arrived.
        """
        session = self._require_session()
        self._move_seq += 1
        seq = self._move_seq

        target_date, target_time = self._mapper.locate(session, pointer, rect, display_days)
        bookings = await self._bookings_for(target_date)

        if seq != self._move_seq or self._session is not session:
            log.debug("Discarding stale preview %d (latest %d)", seq, self._move_seq)
            return None

        self._session = self._mapper.preview(
            session, pointer, target_date, target_time, bookings
        )
        preview = self._session.preview
        self._emit("preview", preview.model_dump() if preview else {})
        return self._session

    async def release(self) -> CommitOutcome:
        """Drop the booking at the current preview and persist it."""
        session = self._require_session()
        # Invalidate any preview still awaiting its bookings
        self._move_seq += 1
        decision = self._mapper.release(session)
        self._session = None

        if not decision.accepted:
            self._emit("rejected", {"reason": decision.reason}, session)
            return CommitOutcome(status="rejected", reason=decision.reason)

        intent = decision.intent
        previous = self._local[session.booking.id]

        # Optimistic update first, authoritative write second
        self._local[previous.id] = previous.model_copy(update={
            "date": intent.new_date,
            "time": intent.new_time,
        })
        self._emit("commit", intent.model_dump(), session)

        try:
            updated = await self._store.update_booking(
                intent.booking_id, date=intent.new_date, time=intent.new_time,
            )
        except Exception as e:
            self._local[previous.id] = previous
            log.warning("Reschedule of booking %s failed, rolled back: %s", previous.id, e)
            self._emit("rollback", {
                "date": previous.date, "time": previous.time, "error": str(e),
            }, session)
            return CommitOutcome(status="failed", reason=str(e), booking=previous)

        self._local[updated.id] = updated
        log.info("Booking %s moved to %s %s", updated.id, updated.date, updated.time)
        return CommitOutcome(status="committed", booking=updated)

    def cancel(self) -> None:
        """Abort the current drag (escape key, pointer left the window, …)."""
        if self._session is None:
            return
        session = self._mapper.cancel(self._session)
        self._session = None
        self._move_seq += 1
        self._emit("cancel", {}, session)

    # ── Helpers ──────────────────────────────────────────────

    def _require_session(self) -> DragSession:
        if self._session is None or not self._session.is_active:
            raise DragStateError("No drag in progress")
        return self._session

    async def _fetch(self, date: str) -> list[Booking]:
        return await self._store.list_bookings(
            staff_id=self._staff_id, business_id=self._business_id, date=date,
        )

    async def _bookings_for(self, date: str) -> list[Booking]:
        """Store bookings for ``date`` with local optimistic changes laid on top."""
        merged = {b.id: b for b in await self._fetch(date)}
        for booking in self._local.values():
            if booking.date == date:
                merged[booking.id] = booking
            elif booking.id in merged:
                # Moved away locally but the store has not caught up yet
                del merged[booking.id]
        return list(merged.values())

    def _emit(self, event_type: str, data: dict, session: DragSession | None = None) -> None:
        session = session or self._session
        if self._feed is not None and session is not None:
            self._feed.emit(event_type, self._client_id, session.booking.id, data)
