"""Territory claim and proximity-collision engine."""

from .collision import CollisionDetector, CollisionMonitor
from .errors import ClaimUploadError, GeometryError, TerritoryClaimError
from .main import main
from .models import CollisionResult, GeoFix, Territory, WarningLevel
from .tracking import PathTracker
from .validation import GeometryValidator

__all__ = [
    "main",
    "ClaimUploadError",
    "CollisionDetector",
    "CollisionMonitor",
    "CollisionResult",
    "GeoFix",
    "GeometryError",
    "GeometryValidator",
    "PathTracker",
    "Territory",
    "TerritoryClaimError",
    "WarningLevel",
]
