"""Proximity warnings and overlap checks against stored territories."""

from .detector import CollisionDetector, PreparedTerritory
from .monitor import CollisionMonitor
from .overlap import find_overlap

__all__ = [
    "CollisionDetector",
    "CollisionMonitor",
    "PreparedTerritory",
    "find_overlap",
]
