"""Client-side path tracking."""

from .persistence import WalkStore
from .state import FixOutcome, TrackerSnapshot, TrackerState
from .tracker import PathTracker, TrackerConfig

__all__ = [
    "FixOutcome",
    "PathTracker",
    "TrackerConfig",
    "TrackerSnapshot",
    "TrackerState",
    "WalkStore",
]
