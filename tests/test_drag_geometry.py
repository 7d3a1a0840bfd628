"""Tests for the calendar pointer-geometry helpers."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from booking_engine.config import Settings
from booking_engine.drag.geometry import CalendarLayout, ContainerRect, column_index_to_date

RECT = ContainerRect(left=100, top=50, width=764, height=676)  # 7 columns of 100px + 64px sidebar


@pytest.fixture
def layout():
    return CalendarLayout()


class TestVerticalAxis:
    def test_top_of_grid_is_start_hour(self, layout):
        assert layout.position_to_minutes(50, 50) == 8 * 60

    def test_one_hour_down(self, layout):
        assert layout.position_to_minutes(50 + 52, 50) == 9 * 60

    def test_fractional_position(self, layout):
        assert layout.position_to_minutes(50 + 26, 50) == pytest.approx(8 * 60 + 30)

    def test_snap_rounds_to_nearest(self, layout):
        assert layout.snap_to_interval(607) == 600
        assert layout.snap_to_interval(608) == 615
        assert layout.snap_to_interval(607.5) == 615

    def test_snap_clamps_to_rendered_hours(self, layout):
        assert layout.snap_to_interval(-200) == 8 * 60
        assert layout.snap_to_interval(7 * 60) == 8 * 60
        assert layout.snap_to_interval(23 * 60) == 21 * 60

    def test_snap_is_idempotent(self, layout):
        for minutes in [-50, 0, 479.9, 480, 512.3, 607.5, 731, 1000.01, 1260, 1500]:
            once = layout.snap_to_interval(minutes)
            assert layout.snap_to_interval(once) == once

    def test_snap_custom_interval(self, layout):
        assert layout.snap_to_interval(610, interval=30) == 600
        assert layout.snap_to_interval(616, interval=30) == 630

    def test_time_to_position_inverts_position_to_minutes(self, layout):
        for time in ("08:00", "09:15", "12:30", "20:45"):
            y = RECT.top + layout.time_to_position(time)
            minutes = layout.snap_to_interval(layout.position_to_minutes(y, RECT.top))
            assert f"{minutes // 60:02d}:{minutes % 60:02d}" == time


class TestHorizontalAxis:
    def test_reversed_columns_rightmost_day_is_index_zero(self, layout):
        # Leftmost column of the grid is the last day in reversed layout
        assert layout.position_to_column_index(RECT.left + 10, RECT, 7) == 6
        assert layout.position_to_column_index(RECT.left + 650, RECT, 7) == 0

    def test_clamped_outside_grid(self, layout):
        assert layout.position_to_column_index(RECT.left - 500, RECT, 7) == 6
        # The sidebar sits to the right of the day columns
        assert layout.position_to_column_index(RECT.left + 740, RECT, 7) == 0
        assert layout.position_to_column_index(RECT.left + 5000, RECT, 7) == 0

    def test_column_round_trip_reversed(self, layout):
        for n in (1, 3, 7):
            for i in range(n):
                x = layout.column_center_x(i, RECT, n)
                assert layout.position_to_column_index(x, RECT, n) == i

    def test_column_round_trip_left_to_right(self):
        layout = CalendarLayout(reversed_columns=False)
        for n in (1, 5, 7):
            for i in range(n):
                x = layout.column_center_x(i, RECT, n)
                assert layout.position_to_column_index(x, RECT, n) == i

    def test_left_to_right_skips_sidebar(self):
        layout = CalendarLayout(reversed_columns=False)
        # Sidebar on the left: first 64px belong to no day, clamp to 0
        assert layout.position_to_column_index(RECT.left + 10, RECT, 7) == 0
        assert layout.position_to_column_index(RECT.left + 64 + 150, RECT, 7) == 1

    def test_zero_columns_rejected(self, layout):
        with pytest.raises(ValueError):
            layout.position_to_column_index(0, RECT, 0)


class TestColumnToDate:
    def test_picks_by_index(self):
        days = ["2026-02-16", "2026-02-17", "2026-02-18"]
        assert column_index_to_date(1, days) == "2026-02-17"

    def test_clamps(self):
        days = ["2026-02-16", "2026-02-17"]
        assert column_index_to_date(-3, days) == "2026-02-16"
        assert column_index_to_date(9, days) == "2026-02-17"

    def test_empty(self):
        with pytest.raises(ValueError):
            column_index_to_date(0, [])


class TestLayoutConfig:
    def test_from_settings(self):
        s = Settings(
            calendar_pixels_per_hour=60,
            calendar_start_hour=7,
            calendar_end_hour=22,
            calendar_reversed_columns=False,
        )
        layout = CalendarLayout.from_settings(s)
        assert layout.pixels_per_hour == 60
        assert layout.start_hour == 7
        assert layout.reversed_columns is False
        assert layout.position_to_minutes(60, 0) == 8 * 60

    def test_invalid_hours(self):
        with pytest.raises(ValueError):
            CalendarLayout(start_hour=10, end_hour=9)
