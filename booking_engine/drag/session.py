"""Drag-to-reschedule state machine over an immutable DragSession value.

A drag runs through::

    idle ──pick_up──▶ dragging ──move──▶ previewing ──release──▶ committed
                                   ▲        │    │
                                   └─move───┘    └──cancel / rejected──▶ cancelled

Every transition returns a *new* DragSession; nothing here mutates state or
performs I/O, so the whole pipeline can be exercised without a UI.  The
release decision reuses the preview's ``has_conflict`` flag, so what the
user saw while hovering is exactly what the commit decides.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from booking_engine.availability import bookings_on, is_slot_available
from booking_engine.drag.geometry import (
    CalendarLayout,
    ContainerRect,
    column_index_to_date,
)
from booking_engine.models.booking import Booking, RescheduleIntent
from booking_engine.timeutils import DateLike, minutes_to_time, to_iso

log = logging.getLogger("booking_engine.drag.session")


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PREVIEWING = "previewing"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


ACTIVE_DRAG_STATES = frozenset({DragState.DRAGGING, DragState.PREVIEWING})


class DragStateError(RuntimeError):
    """Raised when a transition is attempted from a state that does not allow it."""


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class GhostAnchor(BaseModel):
    """Where the dragged booking sat before the drag started."""

    model_config = ConfigDict(frozen=True)

    date: str  # YYYY-MM-DD
    time: str  # HH:MM


class DragPreview(BaseModel):
    """Candidate drop cell shown while dragging."""

    model_config = ConfigDict(frozen=True)

    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    has_conflict: bool


class DragSession(BaseModel):
    """Everything known about one in-progress drag."""

    model_config = ConfigDict(frozen=True)

    booking: Booking
    state: DragState = DragState.DRAGGING
    ghost: Optional[GhostAnchor] = None
    grab_offset_y: float = 0.0  # pointer Y minus the element's top edge
    start_pointer: Point
    current_pointer: Point
    preview: Optional[DragPreview] = None
    generation: int = 0  # bumped on every applied move

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_DRAG_STATES


class ReleaseDecision(BaseModel):
    """Result of dropping the booking: an intent to write, or a rejection."""

    model_config = ConfigDict(frozen=True)

    session: DragSession
    intent: Optional[RescheduleIntent] = None
    reason: str = ""  # "unchanged" | "conflict" | "no_preview" when rejected

    @property
    def accepted(self) -> bool:
        return self.intent is not None


class DragCoordinateMapper:
    """Turns pointer coordinates into previews and release decisions."""

    def __init__(self, layout: CalendarLayout | None = None) -> None:
        self._layout = layout or CalendarLayout()

    @property
    def layout(self) -> CalendarLayout:
        return self._layout

    # ── Transitions ──────────────────────────────────────────

    def pick_up(self, booking: Booking, pointer: Point, element_top: float) -> DragSession:
        """Start dragging ``booking``; ``element_top`` is its rendered top edge."""
        if not booking.time:
            raise DragStateError(f"Booking {booking.id} has no time to drag from")

        session = DragSession(
            booking=booking,
            ghost=GhostAnchor(date=booking.date, time=booking.time),
            grab_offset_y=pointer.y - element_top,
            start_pointer=pointer,
            current_pointer=pointer,
        )
        log.debug("Picked up booking %s at %s %s", booking.id, booking.date, booking.time)
        return session

    def locate(
        self,
        session: DragSession,
        pointer: Point,
        rect: ContainerRect,
        display_days: Sequence[DateLike],
    ) -> tuple[str, str]:
        """Snap the pointer to a (date, time) cell, aligned to the element's top."""
        self._require_active(session, "locate")
        element_y = pointer.y - session.grab_offset_y
        minutes = self._layout.position_to_minutes(element_y, rect.top)
        snapped = self._layout.snap_to_interval(minutes)

        column = self._layout.position_to_column_index(pointer.x, rect, len(display_days))
        target_date = to_iso(column_index_to_date(column, display_days))
        if target_date is None:
            raise ValueError(f"Unparseable display day at column {column}")
        return target_date, minutes_to_time(snapped)

    def preview(
        self,
        session: DragSession,
        pointer: Point,
        target_date: str,
        target_time: str,
        bookings: Sequence[Booking],
    ) -> DragSession:
        """Classify the target cell and return the session in ``previewing``."""
        self._require_active(session, "preview")
        day_bookings = bookings_on(target_date, bookings)
        free = is_slot_available(
            target_time,
            session.booking.duration_minutes,
            day_bookings,
            ignore_id=session.booking.id,
        )
        return session.model_copy(update={
            "state": DragState.PREVIEWING,
            "current_pointer": pointer,
            "preview": DragPreview(date=target_date, time=target_time, has_conflict=not free),
            "generation": session.generation + 1,
        })

    def move(
        self,
        session: DragSession,
        pointer: Point,
        rect: ContainerRect,
        display_days: Sequence[DateLike],
        bookings: Sequence[Booking],
    ) -> DragSession:
        """locate + preview in one synchronous step."""
        target_date, target_time = self.locate(session, pointer, rect, display_days)
        return self.preview(session, pointer, target_date, target_time, bookings)

    def release(self, session: DragSession) -> ReleaseDecision:
        """Drop the booking.  Conflicting or unchanged targets are rejected."""
        self._require_active(session, "release")
        preview = session.preview
        ghost = session.ghost

        if preview is None:
            return self._reject(session, "no_preview")
        if ghost is not None and (preview.date, preview.time) == (ghost.date, ghost.time):
            return self._reject(session, "unchanged")
        if preview.has_conflict:
            return self._reject(session, "conflict")

        intent = RescheduleIntent(
            booking_id=session.booking.id,
            new_date=preview.date,
            new_time=preview.time,
        )
        log.info(
            "Reschedule intent: booking %s → %s %s",
            intent.booking_id, intent.new_date, intent.new_time,
        )
        # Ghost stays on a committed session so a failed write can roll back to it
        committed = session.model_copy(update={"state": DragState.COMMITTED})
        return ReleaseDecision(session=committed, intent=intent)

    def cancel(self, session: DragSession) -> DragSession:
        """Abort the drag; preview and ghost anchor are discarded."""
        return session.model_copy(update={
            "state": DragState.CANCELLED,
            "preview": None,
            "ghost": None,
        })

    # ── Helpers ──────────────────────────────────────────────

    @staticmethod
    def _require_active(session: DragSession, action: str) -> None:
        if not session.is_active:
            raise DragStateError(f"Cannot {action} a drag in state {session.state.value}")

    def _reject(self, session: DragSession, reason: str) -> ReleaseDecision:
        log.info("Drop of booking %s rejected: %s", session.booking.id, reason)
        return ReleaseDecision(session=self.cancel(session), reason=reason)
