"""FastAPI application — HTTP + WebSocket endpoints for the availability engine.

Endpoints:

  GET  /health                      Health check
  POST /api/schedule/resolve        Effective schedule for (staff, date)
  POST /api/slots                   Bookable start times for a duration
  POST /api/slots/check             Conflict check for one (time, duration)
  POST /api/slots/range             Any slot inside a preferred window?
  POST /api/dates                   Dates with at least one bookable slot
  POST /api/bookings/{id}/cancel    Cancel a booking and offer its time to the waiting list
  POST /api/waiting-list/freed      Offer a freed interval to the waiting list
  POST /api/waiting-list/cleanup    Delete expired waiting entries (admin token)
  WS   /ws/drag                     Drag-to-reschedule session
  WS   /ws/calendar/{id}/drags      Watch other clients' drags on a calendar

The drag WebSocket protocol:

  Client → Server:
    {"type": "load", "dates": [...]}                               → loaded
    {"type": "pick_up", "booking_id", "x", "y", "element_top"}     → picked_up
    {"type": "move", "x", "y", "rect": {...}, "display_days": [...]} → preview
    {"type": "release"}                                            → committed | rejected | failed
    {"type": "cancel"}                                             → cancelled

  Server → Client:
    {"type": "connected", "client_id", "calendar_id"}  on accept
    {"type": "error", "message": "..."}  on malformed or out-of-order messages
"""

from __future__ import annotations

# Load .env into os.environ before settings are read
from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
import logging
import secrets
import time
from typing import Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from booking_engine.auth import require_admin_token
from booking_engine.availability import SlotAvailabilityCalculator, bookings_on
from booking_engine.config import settings
from booking_engine.drag.controller import DragController
from booking_engine.drag.geometry import CalendarLayout, ContainerRect
from booking_engine.drag.session import DragCoordinateMapper, DragStateError, Point
from booking_engine.events import open_feed, release_feed
from booking_engine.models.booking import BookingStatus
from booking_engine.models.schedule import StaffMember
from booking_engine.notifiers.webhook import WebhookNotifier
from booking_engine.stores.base import BookingStore, Notifier, ScheduleStore, WaitingListStore
from booking_engine.stores.memory import (
    InMemoryBookingStore,
    InMemoryScheduleStore,
    InMemoryWaitingListStore,
)
from booking_engine.timeutils import to_iso
from booking_engine.waiting_list import WaitingListMatcher

log = logging.getLogger("booking_engine.app")

_START_TIME = time.time()


# ── Request bodies ─────────────────────────────────────────────


class ResolveRequest(BaseModel):
    staff_id: str
    date: str


class SlotsRequest(BaseModel):
    staff_id: str
    date: str
    duration: int = Field(default=settings.default_booking_duration, gt=0)
    ignore_booking_id: Optional[str] = None
    interval: Optional[int] = Field(default=None, gt=0)


class SlotCheckRequest(BaseModel):
    staff_id: str
    date: str
    time: str
    duration: int = Field(default=settings.default_booking_duration, gt=0)
    ignore_booking_id: Optional[str] = None


class RangeRequest(BaseModel):
    staff_id: str
    date: str
    from_time: str
    to_time: str
    duration: int = Field(default=settings.default_booking_duration, gt=0)


class DatesRequest(BaseModel):
    staff_id: str
    dates: list[str]
    duration: int = Field(default=settings.default_booking_duration, gt=0)


class FreedIntervalRequest(BaseModel):
    business_id: str
    date: str
    start_time: str
    end_time: str


class CleanupRequest(BaseModel):
    business_id: Optional[str] = None


def create_app(
    booking_store: BookingStore | None = None,
    schedule_store: ScheduleStore | None = None,
    waiting_list_store: WaitingListStore | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Booking Availability Engine",
        description="Schedule resolution, slot availability, drag rescheduling and waiting-list matching",
        version="0.1.0",
    )

    bookings = booking_store or InMemoryBookingStore()
    schedules = schedule_store or InMemoryScheduleStore()
    waiting_list = waiting_list_store or InMemoryWaitingListStore()
    calculator = SlotAvailabilityCalculator(slot_interval=settings.slot_interval_minutes)
    matcher = WaitingListMatcher(waiting_list, bookings, notifier or WebhookNotifier())
    layout = CalendarLayout.from_settings(settings)

    app.state.booking_store = bookings
    app.state.schedule_store = schedules
    app.state.waiting_list_store = waiting_list
    app.state.matcher = matcher

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    async def _load_staff(staff_id: str) -> StaffMember:
        staff = await schedules.get_staff(staff_id)
        if staff is None:
            raise HTTPException(status_code=404, detail=f"Unknown staff member {staff_id}")
        return staff

    def _iso(date: str) -> str:
        iso = to_iso(date)
        if iso is None:
            raise ValueError(f"Invalid date: {date!r}")
        return iso

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Availability ───────────────────────────────────────────

    @app.post("/api/schedule/resolve")
    async def resolve_schedule(body: ResolveRequest):
        staff = await _load_staff(body.staff_id)
        overrides = await schedules.list_overrides(staff_id=staff.id)
        schedule = calculator.resolver.resolve(_iso(body.date), staff, overrides)
        return schedule.model_dump() if schedule else None

    @app.post("/api/slots")
    async def available_slots(body: SlotsRequest):
        date = _iso(body.date)
        staff = await _load_staff(body.staff_id)
        overrides = await schedules.list_overrides(staff_id=staff.id)
        day_bookings = await bookings.list_bookings(staff_id=staff.id, date=date)
        slots = calculator.get_available_slots(
            date, staff, body.duration, day_bookings, overrides,
            ignore_id=body.ignore_booking_id, interval=body.interval,
        )
        return {"date": date, "slots": slots}

    @app.post("/api/slots/check")
    async def check_slot(body: SlotCheckRequest):
        date = _iso(body.date)
        day_bookings = await bookings.list_bookings(staff_id=body.staff_id, date=date)
        available = calculator.is_slot_available(
            body.time, body.duration, day_bookings, body.ignore_booking_id,
        )
        return {"available": available}

    @app.post("/api/slots/range")
    async def slots_in_range(body: RangeRequest):
        date = _iso(body.date)
        staff = await _load_staff(body.staff_id)
        overrides = await schedules.list_overrides(staff_id=staff.id)
        day_bookings = await bookings.list_bookings(staff_id=staff.id, date=date)
        available = calculator.has_available_slots_in_range(
            date, staff, body.duration, body.from_time, body.to_time,
            day_bookings, overrides,
        )
        return {"available": available}

    @app.post("/api/dates")
    async def available_dates(body: DatesRequest):
        dates = [_iso(d) for d in body.dates]
        staff = await _load_staff(body.staff_id)
        overrides = await schedules.list_overrides(staff_id=staff.id)
        staff_bookings = await bookings.list_bookings(staff_id=staff.id)
        in_range = [b for d in dates for b in bookings_on(d, staff_bookings)]
        return {
            "dates": calculator.get_available_dates(
                dates, staff, body.duration, in_range, overrides,
            )
        }

    # ── Freeing events ─────────────────────────────────────────

    @app.post("/api/bookings/{booking_id}/cancel")
    async def cancel_booking(booking_id: str):
        booking = await bookings.get_booking(booking_id)
        if booking is None:
            raise HTTPException(status_code=404, detail=f"Unknown booking {booking_id}")
        if booking.status == BookingStatus.CANCELLED:
            return {"booking": booking.model_dump(), "waiting_list": None}

        cancelled = await bookings.update_booking(booking_id, status=BookingStatus.CANCELLED)
        result = await matcher.notify_for_cancelled_booking(cancelled)
        return {"booking": cancelled.model_dump(), "waiting_list": result.model_dump()}

    @app.post("/api/waiting-list/freed")
    async def freed_interval(body: FreedIntervalRequest):
        result = await matcher.notify_for_freed_interval(
            body.business_id, body.date, body.start_time, body.end_time,
        )
        return result.model_dump()

    @app.post("/api/waiting-list/cleanup", dependencies=[Depends(require_admin_token)])
    async def cleanup_waiting_list(body: CleanupRequest):
        deleted = await matcher.cleanup_expired_entries(body.business_id)
        return {"deleted": deleted}

    # ── Drag-to-reschedule WebSocket ───────────────────────────

    @app.websocket("/ws/drag")
    async def ws_drag(websocket: WebSocket) -> None:
        await handle_drag_ws(websocket, DragCoordinateMapper(layout), bookings, matcher)

    @app.websocket("/ws/calendar/{calendar_id}/drags")
    async def ws_calendar_drags(websocket: WebSocket, calendar_id: str) -> None:
        await handle_watch_ws(websocket, calendar_id)

    return app


def calendar_key(staff_id: Optional[str], business_id: Optional[str]) -> str:
    """Feed name for the calendar a drag client edits."""
    return staff_id or business_id or "all"


async def handle_drag_ws(
    ws: WebSocket,
    mapper: DragCoordinateMapper,
    bookings: BookingStore,
    matcher: WaitingListMatcher,
) -> None:
    """Handle one drag WebSocket connection for a single staff calendar.

    Moves are recomputed in background tasks so a slow bookings read never
    blocks the socket; the controller discards any result that a newer
    move has superseded.  Every drag event is also published to the
    calendar's feed for other clients watching the same calendar.
    """
    await ws.accept()
    staff_id = ws.query_params.get("staff_id") or None
    business_id = ws.query_params.get("business_id") or None

    client_id = secrets.token_urlsafe(18)
    calendar_id = calendar_key(staff_id, business_id)
    feed = open_feed(calendar_id)
    feed.add_publisher()

    controller = DragController(mapper, bookings, staff_id=staff_id, business_id=business_id)
    controller.attach_feed(feed, client_id)
    pending: set[asyncio.Task] = set()
    log.info("Drag WebSocket connected: client=%s calendar=%s", client_id, calendar_id)

    async def _push(payload: dict) -> None:
        """Send from a background task; the client may be gone by now."""
        try:
            await ws.send_json(payload)
        except Exception as e:
            log.debug("Drag %s: %s not delivered: %s", client_id, payload.get("type"), e)

    async def _send_preview(pointer: Point, rect: ContainerRect, days: list[str]) -> None:
        try:
            session = await controller.move(pointer, rect, days)
        except (DragStateError, ValueError) as e:
            await _push({"type": "error", "message": str(e)})
            return
        except Exception:
            log.exception("Preview recompute failed for drag %s", client_id)
            await _push({"type": "error", "message": "Preview unavailable"})
            return
        if session is not None and session.preview is not None:
            await _push({"type": "preview", **session.preview.model_dump()})

    try:
        await ws.send_json({"type": "connected", "client_id": client_id, "calendar_id": calendar_id})
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            msg_type = msg.get("type")
            log.debug("Drag recv: %s", msg_type)

            try:
                if msg_type == "load":
                    loaded = await controller.load([to_iso(d) or d for d in msg.get("dates", [])])
                    await ws.send_json({
                        "type": "loaded",
                        "bookings": [b.model_dump(mode="json") for b in loaded],
                    })

                elif msg_type == "pick_up":
                    session = controller.pick_up(
                        msg["booking_id"],
                        Point(x=msg["x"], y=msg["y"]),
                        float(msg.get("element_top", msg["y"])),
                    )
                    await ws.send_json({
                        "type": "picked_up",
                        "ghost": session.ghost.model_dump() if session.ghost else None,
                    })

                elif msg_type == "move":
                    rect = ContainerRect(**msg["rect"])
                    task = asyncio.ensure_future(_send_preview(
                        Point(x=msg["x"], y=msg["y"]), rect, list(msg["display_days"]),
                    ))
                    pending.add(task)
                    task.add_done_callback(pending.discard)

                elif msg_type == "release":
                    session = controller.session
                    outcome = await controller.release()
                    await ws.send_json({"type": outcome.status, **outcome.model_dump(mode="json")})
                    if outcome.status == "committed" and session and session.ghost:
                        # The original cell is now free for the waiting list
                        vacated = session.booking.model_copy(update={
                            "date": session.ghost.date,
                            "time": session.ghost.time,
                        })
                        await matcher.notify_for_vacated_booking(vacated)

                elif msg_type == "cancel":
                    controller.cancel()
                    await ws.send_json({"type": "cancelled"})

                else:
                    await ws.send_json({"type": "error", "message": f"Unknown message type {msg_type!r}"})

            except (KeyError, TypeError, ValueError, ValidationError, DragStateError) as e:
                await ws.send_json({"type": "error", "message": str(e)})

    except WebSocketDisconnect:
        log.info("Drag WebSocket disconnected: client=%s", client_id)
    finally:
        for task in pending:
            task.cancel()
        controller.cancel()
        feed.remove_publisher(client_id)
        release_feed(calendar_id)


async def handle_watch_ws(ws: WebSocket, calendar_id: str) -> None:
    """Stream another client's drags on ``calendar_id`` as they happen.

    The first message is a snapshot of the drags currently in flight;
    every drag event follows.  Anything the watcher sends is ignored, the
    receive loop only notices the disconnect.
    """
    await ws.accept()
    feed = open_feed(calendar_id)
    queue = feed.subscribe()

    async def _forward() -> None:
        try:
            while True:
                event = await queue.get()
                await ws.send_json(event)
        except Exception as e:
            log.debug("Drag watch stream for %s stopped: %s", calendar_id, e)

    forwarder: asyncio.Task | None = None
    try:
        await ws.send_json({"type": "snapshot", "calendar_id": calendar_id, "drags": feed.in_flight()})
        forwarder = asyncio.ensure_future(_forward())
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.warning("Drag watch stream error for %s: %s", calendar_id, e)
    finally:
        if forwarder is not None:
            forwarder.cancel()
        feed.unsubscribe(queue)
        release_feed(calendar_id)


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    for warning in settings.validate_startup():
        log.warning(warning)

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "booking_engine.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
