"""HTTP and WebSocket tests for the FastAPI app, backed by in-memory stores."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

from booking_engine.app import create_app
from booking_engine.drag.geometry import CalendarLayout, ContainerRect
from booking_engine.models.booking import Booking
from booking_engine.models.schedule import DaySchedule, Shift, StaffMember
from booking_engine.models.waiting_list import Contact, WaitingListEntry, WaitingStatus
from booking_engine.stores.base import BookingStoreError, NotificationResult, Notifier
from booking_engine.stores.memory import (
    InMemoryBookingStore,
    InMemoryScheduleStore,
    InMemoryWaitingListStore,
)

MONDAY = "2026-02-16"
DAYS = ["2026-02-16", "2026-02-17", "2026-02-18", "2026-02-19", "2026-02-20", "2026-02-21", "2026-02-22"]
RECT = {"left": 0, "top": 0, "width": 764, "height": 676}


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent = []

    async def send_waiting_list_notification(self, contact, date, time, service_name=""):
        self.sent.append((contact.phone, date, time))
        return NotificationResult(success=True)


class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def waiting():
    return InMemoryWaitingListStore([
        WaitingListEntry(
            id="w1", business_id="biz", date=MONDAY,
            from_time="09:00", to_time="12:00", service_duration_minutes=60,
            contact=Contact(name="Dana", phone="+15551230000"),
        ),
    ])


@pytest.fixture
def bookings():
    return InMemoryBookingStore([
        Booking(id="b1", staff_id="x", business_id="biz", date=MONDAY,
                time="09:00", duration_minutes=60),
    ])


@pytest.fixture
def client(notifier, waiting, bookings):
    staff = StaffMember(id="x", business_id="biz", schedule={
        "monday": DaySchedule(shifts=[
            Shift(start="09:00", end="12:00"),
            Shift(start="13:00", end="17:00"),
        ]),
    })
    app = create_app(
        booking_store=bookings,
        schedule_store=InMemoryScheduleStore(staff=[staff]),
        waiting_list_store=waiting,
        notifier=notifier,
    )
    return TestClient(app)


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestAvailabilityEndpoints:
    def test_resolve(self, client):
        resp = client.post("/api/schedule/resolve", json={"staff_id": "x", "date": MONDAY})
        assert resp.status_code == 200
        body = resp.json()
        assert body["enabled"] is True
        assert [s["start"] for s in body["shifts"]] == ["09:00", "13:00"]

    def test_resolve_no_template(self, client):
        resp = client.post("/api/schedule/resolve", json={"staff_id": "x", "date": "2026-02-17"})
        assert resp.status_code == 200
        assert resp.json() is None

    def test_unknown_staff(self, client):
        resp = client.post("/api/slots", json={"staff_id": "nobody", "date": MONDAY})
        assert resp.status_code == 404

    def test_bad_date(self, client):
        resp = client.post("/api/slots", json={"staff_id": "x", "date": "31/02/2026"})
        assert resp.status_code == 400
        assert "Invalid date" in resp.json()["error"]

    def test_slots(self, client):
        resp = client.post("/api/slots", json={"staff_id": "x", "date": "16/02/2026", "duration": 60})
        body = resp.json()
        assert body["date"] == MONDAY
        assert body["slots"][0] == "10:00"
        assert "11:15" not in body["slots"]
        assert body["slots"][-1] == "16:00"

    def test_slots_ignoring_own_booking(self, client):
        resp = client.post("/api/slots", json={
            "staff_id": "x", "date": MONDAY, "duration": 60, "ignore_booking_id": "b1",
        })
        assert resp.json()["slots"][0] == "09:00"

    def test_non_positive_duration_rejected(self, client):
        resp = client.post("/api/slots", json={"staff_id": "x", "date": MONDAY, "duration": 0})
        assert resp.status_code == 422

    def test_check(self, client):
        check = lambda t: client.post("/api/slots/check", json={
            "staff_id": "x", "date": MONDAY, "time": t, "duration": 30,
        }).json()["available"]
        assert check("09:30") is False
        assert check("10:00") is True

    def test_range(self, client):
        ask = lambda a, b: client.post("/api/slots/range", json={
            "staff_id": "x", "date": MONDAY, "from_time": a, "to_time": b, "duration": 60,
        }).json()["available"]
        assert ask("12:00", "13:00") is False
        assert ask("13:00", "14:00") is True

    def test_dates(self, client):
        resp = client.post("/api/dates", json={
            "staff_id": "x", "dates": [MONDAY, "2026-02-17"], "duration": 60,
        })
        assert resp.json() == {"dates": [MONDAY]}


class TestFreeingEndpoints:
    def test_cancel_offers_time_to_waiting_list(self, client, notifier, waiting):
        resp = client.post("/api/bookings/b1/cancel")
        assert resp.status_code == 200
        body = resp.json()
        assert body["booking"]["status"] == "cancelled"
        assert body["waiting_list"] == {"notified": 1, "skipped": 0}
        assert notifier.sent == [("+15551230000", MONDAY, "09:00")]
        assert waiting.get("w1").status == WaitingStatus.NOTIFIED

    def test_cancel_twice_is_noop(self, client, notifier):
        client.post("/api/bookings/b1/cancel")
        resp = client.post("/api/bookings/b1/cancel")
        assert resp.json()["waiting_list"] is None
        assert len(notifier.sent) == 1

    def test_cancel_booking_running_past_midnight(self, client, bookings, waiting, notifier):
        bookings.add(Booking(id="b-late", staff_id="x", business_id="biz", date=MONDAY,
                             time="23:30", duration_minutes=60))
        waiting.add(WaitingListEntry(
            id="w-late", business_id="biz", date=MONDAY,
            from_time="23:00", to_time="24:00", service_duration_minutes=30,
            contact=Contact(name="Lee", phone="+15559870000"),
        ))

        resp = client.post("/api/bookings/b-late/cancel")

        assert resp.status_code == 200
        body = resp.json()
        assert body["booking"]["status"] == "cancelled"
        assert body["waiting_list"] == {"notified": 1, "skipped": 1}
        assert notifier.sent == [("+15559870000", MONDAY, "23:30")]

    def test_cancel_unknown(self, client):
        assert client.post("/api/bookings/nope/cancel").status_code == 404

    def test_freed_interval(self, client, notifier):
        resp = client.post("/api/waiting-list/freed", json={
            "business_id": "biz", "date": MONDAY, "start_time": "10:00", "end_time": "11:00",
        })
        assert resp.json() == {"notified": 1, "skipped": 0}
        assert notifier.sent[0][2] == "10:00"

    def test_freed_interval_empty_range(self, client):
        resp = client.post("/api/waiting-list/freed", json={
            "business_id": "biz", "date": MONDAY, "start_time": "11:00", "end_time": "11:00",
        })
        assert resp.status_code == 400


class TestCleanupEndpoint:
    def test_requires_token(self, client, monkeypatch):
        monkeypatch.setattr("booking_engine.auth.settings", FakeSettings(admin_api_key="k"))
        assert client.post("/api/waiting-list/cleanup", json={}).status_code == 401

    def test_with_token(self, client, monkeypatch):
        monkeypatch.setattr("booking_engine.auth.settings", FakeSettings(admin_api_key="k"))
        resp = client.post(
            "/api/waiting-list/cleanup", json={"business_id": "biz"},
            headers={"Authorization": "Bearer k"},
        )
        assert resp.status_code == 200
        # The fixture entry is dated in the past relative to the test run
        assert resp.json() == {"deleted": 1}


class TestDragWebSocket:
    def _pointer(self, column, time):
        layout = CalendarLayout()
        rect = ContainerRect(**RECT)
        return layout.column_center_x(column, rect, len(DAYS)), layout.time_to_position(time)

    def test_drag_commit_and_waiting_list(self, client, notifier):
        x, top = self._pointer(0, "09:00")
        to_x, to_top = self._pointer(0, "14:00")

        with client.websocket_connect("/ws/drag?staff_id=x&business_id=biz") as ws:
            assert ws.receive_json()["type"] == "connected"
            ws.send_json({"type": "load", "dates": [MONDAY]})
            loaded = ws.receive_json()
            assert loaded["type"] == "loaded"
            assert [b["id"] for b in loaded["bookings"]] == ["b1"]

            ws.send_json({"type": "pick_up", "booking_id": "b1",
                          "x": x, "y": top + 10, "element_top": top})
            picked = ws.receive_json()
            assert picked["ghost"] == {"date": MONDAY, "time": "09:00"}

            ws.send_json({"type": "move", "x": to_x, "y": to_top + 10,
                          "rect": RECT, "display_days": DAYS})
            preview = ws.receive_json()
            assert preview == {"type": "preview", "date": MONDAY, "time": "14:00",
                               "has_conflict": False}

            ws.send_json({"type": "release"})
            outcome = ws.receive_json()
            assert outcome["type"] == "committed"
            assert outcome["booking"]["time"] == "14:00"

            # Processed after the release's waiting-list pass has finished
            ws.send_json({"type": "cancel"})
            assert ws.receive_json() == {"type": "cancelled"}

        assert notifier.sent == [("+15551230000", MONDAY, "09:00")]

    def test_out_of_order_messages(self, client):
        with client.websocket_connect("/ws/drag?staff_id=x") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "connected"
            assert hello["calendar_id"] == "x"
            ws.send_json({"type": "release"})
            assert ws.receive_json()["type"] == "error"

            ws.send_text("not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

            ws.send_json({"type": "pick_up", "booking_id": "b1", "x": 0, "y": 0})
            assert ws.receive_json()["type"] == "error"  # not loaded yet

            ws.send_json({"type": "teleport"})
            assert ws.receive_json()["type"] == "error"

    def test_preview_store_failure_reported(self, notifier, waiting):
        class FlakyBookingStore(InMemoryBookingStore):
            failing = False

            async def list_bookings(self, **filters):
                if self.failing:
                    raise BookingStoreError("bookings backend unavailable")
                return await super().list_bookings(**filters)

        store = FlakyBookingStore([
            Booking(id="b1", staff_id="x", business_id="biz", date=MONDAY,
                    time="09:00", duration_minutes=60),
        ])
        app = create_app(
            booking_store=store,
            schedule_store=InMemoryScheduleStore(),
            waiting_list_store=waiting,
            notifier=notifier,
        )
        x, top = self._pointer(0, "09:00")
        to_x, to_top = self._pointer(0, "14:00")

        with TestClient(app) as client:
            with client.websocket_connect("/ws/drag?staff_id=x") as ws:
                assert ws.receive_json()["type"] == "connected"
                ws.send_json({"type": "load", "dates": [MONDAY]})
                assert ws.receive_json()["type"] == "loaded"
                ws.send_json({"type": "pick_up", "booking_id": "b1",
                              "x": x, "y": top + 10, "element_top": top})
                assert ws.receive_json()["type"] == "picked_up"

                store.failing = True
                ws.send_json({"type": "move", "x": to_x, "y": to_top + 10,
                              "rect": RECT, "display_days": DAYS})
                assert ws.receive_json() == {"type": "error", "message": "Preview unavailable"}

                # The socket keeps serving after the failed preview
                ws.send_json({"type": "cancel"})
                assert ws.receive_json() == {"type": "cancelled"}


class TestCalendarWatchWebSocket:
    def test_watcher_sees_other_clients_drag(self, client):
        layout = CalendarLayout()
        top = layout.time_to_position("09:00")
        x = layout.column_center_x(0, ContainerRect(**RECT), len(DAYS))

        # One event loop for both sockets so they share the calendar feed
        with client:
            with client.websocket_connect("/ws/calendar/x/drags") as watcher:
                assert watcher.receive_json() == {"type": "snapshot", "calendar_id": "x", "drags": []}

                with client.websocket_connect("/ws/drag?staff_id=x&business_id=biz") as ws:
                    hello = ws.receive_json()
                    ws.send_json({"type": "load", "dates": [MONDAY]})
                    ws.receive_json()
                    ws.send_json({"type": "pick_up", "booking_id": "b1",
                                  "x": x, "y": top + 10, "element_top": top})
                    ws.receive_json()

                    event = watcher.receive_json()
                    assert event["type"] == "pick_up"
                    assert event["booking_id"] == "b1"
                    assert event["client_id"] == hello["client_id"]
                    assert event["data"] == {"date": MONDAY, "time": "09:00"}

                    with client.websocket_connect("/ws/calendar/x/drags") as late:
                        snapshot = late.receive_json()
                        assert [d["booking_id"] for d in snapshot["drags"]] == ["b1"]

                # Disconnecting mid-drag cancels it for everyone watching
                assert watcher.receive_json()["type"] == "cancel"
