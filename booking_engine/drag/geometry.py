"""Pure pointer-geometry helpers for the week calendar.

The calendar renders a vertical time axis (``pixels_per_hour`` tall per
hour, starting at ``start_hour``) next to a sidebar holding the hour
labels, and ``column_count`` day columns.  In the right-to-left layout the
sidebar sits on the right and the day columns run right-to-left, so the
leftmost rendered column is the *last* day.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, TypeVar

from booking_engine.config import Settings
from booking_engine.timeutils import to_minutes

T = TypeVar("T")


@dataclass(frozen=True)
class ContainerRect:
    """Bounding rectangle of the calendar grid, in client coordinates."""

    left: float
    top: float
    width: float
    height: float = 0.0


@dataclass(frozen=True)
class CalendarLayout:
    """Geometry constants of one calendar rendering."""

    pixels_per_hour: float = 52.0
    start_hour: int = 8
    end_hour: int = 21
    slot_interval: int = 15
    sidebar_width: float = 64.0
    reversed_columns: bool = True

    def __post_init__(self) -> None:
        if self.pixels_per_hour <= 0:
            raise ValueError("pixels_per_hour must be positive")
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be before end_hour")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CalendarLayout":
        return cls(
            pixels_per_hour=settings.calendar_pixels_per_hour,
            start_hour=settings.calendar_start_hour,
            end_hour=settings.calendar_end_hour,
            slot_interval=settings.slot_interval_minutes,
            sidebar_width=settings.calendar_sidebar_width,
            reversed_columns=settings.calendar_reversed_columns,
        )

    @property
    def min_minutes(self) -> int:
        return self.start_hour * 60

    @property
    def max_minutes(self) -> int:
        return self.end_hour * 60

    # ── Vertical axis ──────────────────────────────────────────

    def position_to_minutes(self, y: float, container_top: float) -> float:
        """Map a Y coordinate to (unsnapped) minutes since midnight."""
        relative_y = y - container_top
        return self.start_hour * 60 + relative_y / self.pixels_per_hour * 60

    def snap_to_interval(self, minutes: float, interval: int | None = None) -> int:
        """Round to the nearest interval, clamped into the rendered hours."""
        step = interval or self.slot_interval
        # Half-up rounding so x.5 boundaries behave like the browser's Math.round
        snapped = math.floor(minutes / step + 0.5) * step
        return max(self.min_minutes, min(self.max_minutes, snapped))

    def time_to_position(self, time: str) -> float:
        """Top offset in pixels of ``HH:MM`` relative to the grid."""
        minutes_from_start = to_minutes(time) - self.start_hour * 60
        return minutes_from_start / 60 * self.pixels_per_hour

    # ── Horizontal axis ────────────────────────────────────────

    def _day_columns_left(self, rect: ContainerRect) -> float:
        # The sidebar sits on the right in RTL, on the left otherwise
        return rect.left if self.reversed_columns else rect.left + self.sidebar_width

    def _column_width(self, rect: ContainerRect, column_count: int) -> float:
        if column_count <= 0:
            raise ValueError("column_count must be positive")
        return (rect.width - self.sidebar_width) / column_count

    def position_to_column_index(
        self, x: float, rect: ContainerRect, column_count: int
    ) -> int:
        """Map an X coordinate to a day-column index in ``[0, column_count)``."""
        column_width = self._column_width(rect, column_count)
        relative_x = x - self._day_columns_left(rect)
        raw_index = math.floor(relative_x / column_width) if column_width > 0 else 0
        index = column_count - 1 - raw_index if self.reversed_columns else raw_index
        return max(0, min(column_count - 1, index))

    def column_center_x(self, index: int, rect: ContainerRect, column_count: int) -> float:
        """Representative X coordinate (centre) of the column with ``index``."""
        column_width = self._column_width(rect, column_count)
        raw_index = column_count - 1 - index if self.reversed_columns else index
        return self._day_columns_left(rect) + (raw_index + 0.5) * column_width


def column_index_to_date(index: int, display_days: Sequence[T]) -> T:
    """Pick the displayed day for a column index, clamped to the visible days."""
    if not display_days:
        raise ValueError("display_days is empty")
    return display_days[max(0, min(len(display_days) - 1, index))]
