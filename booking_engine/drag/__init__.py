"""Drag-to-reschedule: pointer geometry, session state machine, async controller."""

from .controller import CommitOutcome, DragController
from .geometry import CalendarLayout, ContainerRect, column_index_to_date
from .session import (
    DragCoordinateMapper,
    DragPreview,
    DragSession,
    DragState,
    DragStateError,
    GhostAnchor,
    Point,
    ReleaseDecision,
)

__all__ = [
    "CalendarLayout",
    "CommitOutcome",
    "ContainerRect",
    "DragController",
    "DragCoordinateMapper",
    "DragPreview",
    "DragSession",
    "DragState",
    "DragStateError",
    "GhostAnchor",
    "Point",
    "ReleaseDecision",
    "column_index_to_date",
]
