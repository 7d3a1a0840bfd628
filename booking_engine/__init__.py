"""Appointment availability and conflict-resolution engine.

Resolves effective working schedules, enumerates bookable slots, maps
drag gestures on the calendar to reschedule intents and offers freed
capacity to the waiting list.
"""

__version__ = "0.1.0"
