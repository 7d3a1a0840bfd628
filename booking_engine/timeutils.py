"""Date and wall-clock helpers shared by the resolver, calculator and matcher.

Times travel through the engine as ``HH:MM`` strings and are compared as
minutes since midnight.  Dates arrive either as ``date`` objects, ISO
``YYYY-MM-DD`` strings or legacy ``DD/MM/YYYY`` strings written by older
clients; everything is normalised to ISO before comparison.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Union

DateLike = Union[date, datetime, str]

MINUTES_PER_DAY = 24 * 60

# Python's weekday(): Monday == 0
DAY_KEYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def to_minutes(value: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight."""
    try:
        hours, minutes = value.split(":")
        h, m = int(hours), int(minutes)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time: {value!r}. Expected HH:MM.") from None
    # 24:00 is allowed as an end-of-day shift boundary
    if not (0 <= h <= 24 and 0 <= m < 60) or (h == 24 and m):
        raise ValueError(f"Invalid time: {value!r}. Expected HH:MM.")
    return h * 60 + m


def minutes_to_time(total_minutes: int) -> str:
    """Convert minutes since midnight to a zero-padded ``HH:MM`` string."""
    total_minutes = int(total_minutes)
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    """Shift ``value`` by ``minutes``, never past the 24:00 end of day."""
    return minutes_to_time(min(to_minutes(value) + minutes, MINUTES_PER_DAY))


def parse_date(value: DateLike | None) -> date | None:
    """Parse any supported date input, returning None when it is unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if "/" in text:
        try:
            return datetime.strptime(text, "%d/%m/%Y").date()
        except ValueError:
            return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def to_iso(value: DateLike | None) -> str | None:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def day_key(value: DateLike) -> str | None:
    """Weekday key used by working-hours templates (``"monday"`` … ``"sunday"``)."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return DAY_KEYS[parsed.weekday()]
