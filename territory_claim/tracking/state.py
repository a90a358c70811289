"""Tracker states and the immutable snapshot handed to observers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..errors import GeometryError
from ..models import AuthorizationStatus, Ring, SavedWalk, ValidatedPolygon


class TrackerState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    CLOSED = "closed"
    VALIDATED = "validated"
    INVALID = "invalid"
    SUSPENDED = "suspended"


class FixOutcome(str, Enum):
    """What the tracker did with one GPS fix."""

    ACCEPTED = "accepted"
    CLOSED = "closed"
    REJECTED_ACCURACY = "rejected_accuracy"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class TrackerSnapshot:
    state: TrackerState = TrackerState.IDLE
    path: Ring = ()
    total_distance: float = 0.0
    calculated_area: float = 0.0
    validation_passed: bool = False
    validation_error: Optional[GeometryError] = None
    validated_polygon: Optional[ValidatedPolygon] = None
    speed_warning: Optional[str] = None
    started_at: Optional[datetime] = None
    pending_walk: Optional[SavedWalk] = None
    authorization: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED

    @property
    def is_tracking(self) -> bool:
        return self.state is TrackerState.TRACKING

    @property
    def is_closed(self) -> bool:
        return self.state in (
            TrackerState.CLOSED,
            TrackerState.VALIDATED,
            TrackerState.INVALID,
        )

    @property
    def point_count(self) -> int:
        return len(self.path)


__all__ = ["TrackerState", "FixOutcome", "TrackerSnapshot"]
