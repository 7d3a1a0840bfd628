"""Live drag feed shared by everyone looking at the same staff calendar.

Every drag WebSocket publishes its controller's events (pick-up, preview,
commit, rollback, rejection, cancel) into the feed of the calendar it is
editing.  Other clients watching that calendar subscribe to the feed and
render the other user's ghost and candidate cell while the drag is still
in flight, instead of only seeing the result after the commit.

A late subscriber first asks for :meth:`CalendarFeed.in_flight`, the latest
event of every drag that has not finished yet, then follows the stream.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TypedDict

log = logging.getLogger("booking_engine.events")

# Events after which a booking is no longer being dragged
TERMINAL_EVENTS = frozenset({"commit", "rollback", "rejected", "cancel"})


class DragEvent(TypedDict):
    type: str          # pick_up | preview | commit | rollback | rejected | cancel
    timestamp: float
    calendar_id: str
    client_id: str     # drag connection that produced the event
    booking_id: str
    data: dict


class CalendarFeed:
    """Fan-out of drag events for one calendar.

    Each subscriber gets its own bounded asyncio.Queue.  A slow subscriber
    loses its oldest events first; previews supersede each other so the
    newest state is what matters.  The log keeps only the last ``max_log``
    events.
    """

    def __init__(self, calendar_id: str, max_queue: int = 200, max_log: int = 500) -> None:
        self._calendar_id = calendar_id
        self._max_queue = max_queue
        self._subscribers: list[asyncio.Queue[DragEvent]] = []
        self._log: deque[DragEvent] = deque(maxlen=max_log)
        self._in_flight: dict[str, DragEvent] = {}
        self._publishers = 0

    @property
    def calendar_id(self) -> str:
        return self._calendar_id

    # ── Subscribers ───────────────────────────────────────────

    def subscribe(self) -> asyncio.Queue[DragEvent]:
        q: asyncio.Queue[DragEvent] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.append(q)
        log.info("Watcher joined calendar %s (total: %d)",
                 self._calendar_id, len(self._subscribers))
        return q

    def unsubscribe(self, q: asyncio.Queue[DragEvent]) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)
            log.info("Watcher left calendar %s (total: %d)",
                     self._calendar_id, len(self._subscribers))

    # ── Publishers ────────────────────────────────────────────

    def add_publisher(self) -> None:
        self._publishers += 1

    def remove_publisher(self, client_id: str | None = None) -> None:
        self._publishers = max(0, self._publishers - 1)
        if client_id is not None:
            # A client that vanished mid-drag leaves nothing in flight behind
            self._in_flight = {
                booking_id: event for booking_id, event in self._in_flight.items()
                if event["client_id"] != client_id
            }

    def emit(self, event_type: str, client_id: str, booking_id: str, data: dict) -> DragEvent:
        """Record one drag event and push it to every watcher."""
        event: DragEvent = {
            "type": event_type,
            "timestamp": time.time(),
            "calendar_id": self._calendar_id,
            "client_id": client_id,
            "booking_id": booking_id,
            "data": data,
        }
        self._log.append(event)
        if event_type in TERMINAL_EVENTS:
            self._in_flight.pop(booking_id, None)
        else:
            self._in_flight[booking_id] = event

        for q in self._subscribers:
            if q.full():
                q.get_nowait()
            q.put_nowait(event)
        return event

    # ── Introspection ─────────────────────────────────────────

    def in_flight(self) -> list[DragEvent]:
        """Latest event of each drag on this calendar that has not ended."""
        return list(self._in_flight.values())

    @property
    def event_log(self) -> list[DragEvent]:
        return list(self._log)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def idle(self) -> bool:
        return not self._subscribers and self._publishers == 0


# ── Feed registry ────────────────────────────────────────────────────

_feeds: dict[str, CalendarFeed] = {}


def open_feed(calendar_id: str) -> CalendarFeed:
    """Get or create the feed for a calendar."""
    feed = _feeds.get(calendar_id)
    if feed is None:
        feed = _feeds[calendar_id] = CalendarFeed(calendar_id)
        log.info("Drag feed opened for calendar %s", calendar_id)
    return feed


def release_feed(calendar_id: str) -> None:
    """Drop the feed once no one publishes to it or watches it."""
    feed = _feeds.get(calendar_id)
    if feed is not None and feed.idle:
        del _feeds[calendar_id]
        log.info("Drag feed closed for calendar %s", calendar_id)


def active_feeds() -> list[str]:
    return sorted(_feeds)
