"""Dataclasses shared by the tracker, validator, detector and upload service."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import EARTH_RADIUS_M

LatLon = Tuple[float, float]
Ring = Tuple[LatLon, ...]


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    RESTRICTED = "restricted"
    AUTHORIZED = "authorized"


@dataclass(frozen=True, slots=True)
class GeoFix:
    """One timestamped GPS reading (timestamp in epoch seconds)."""

    latitude: float
    longitude: float
    accuracy: float
    timestamp: float

    @property
    def coordinate(self) -> LatLon:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @classmethod
    def from_points(cls, points: Iterable[LatLon]) -> "BoundingBox":
        pts = list(points)
        if not pts:
            raise ValueError("Cannot compute a bounding box for no points")
        lats = [p[0] for p in pts]
        lons = [p[1] for p in pts]
        return cls(min(lats), max(lats), min(lons), max(lons))

    def expand(self, metres: float) -> "BoundingBox":
        """Return the box grown by ``metres`` on every side."""

        if metres <= 0:
            return self
        dlat = math.degrees(metres / EARTH_RADIUS_M)
        widest_lat = max(abs(self.min_lat), abs(self.max_lat))
        cos_lat = max(math.cos(math.radians(widest_lat)), 1e-6)
        dlon = dlat / cos_lat
        return BoundingBox(
            self.min_lat - dlat,
            self.max_lat + dlat,
            self.min_lon - dlon,
            self.max_lon + dlon,
        )

    def intersects(self, other: "BoundingBox") -> bool:
        return not (
            other.min_lat > self.max_lat
            or other.max_lat < self.min_lat
            or other.min_lon > self.max_lon
            or other.max_lon < self.min_lon
        )

    def contains(self, point: LatLon) -> bool:
        lat, lon = point
        return (
            self.min_lat <= lat <= self.max_lat
            and self.min_lon <= lon <= self.max_lon
        )

    def to_payload(self) -> Dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BoundingBox":
        return cls(
            float(payload["min_lat"]),
            float(payload["max_lat"]),
            float(payload["min_lon"]),
            float(payload["max_lon"]),
        )


class WarningLevel(IntEnum):
    """Collision bands ordered by severity."""

    SAFE = 0
    CAUTION = 1
    WARNING = 2
    DANGER = 3
    VIOLATION = 4

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class CollisionResult:
    warning_level: WarningLevel
    distance_meters: Optional[float] = None
    message: Optional[str] = None
    offending_territory_id: Optional[str] = None

    @classmethod
    def safe(cls) -> "CollisionResult":
        return cls(WarningLevel.SAFE)

    @property
    def has_collision(self) -> bool:
        return self.warning_level is WarningLevel.VIOLATION


@dataclass(frozen=True, slots=True)
class TrackedPath:
    """Immutable view of the path walked during one claim attempt."""

    points: Ring = ()
    total_distance: float = 0.0
    is_closed: bool = False

    @property
    def point_count(self) -> int:
        return len(self.points)


@dataclass(frozen=True, slots=True)
class ValidatedPolygon:
    """Closed simple ring (first vertex repeated last) with its metric area."""

    ring: Ring
    area: float
    point_count: int
    bounding_box: BoundingBox
    repaired: bool = False


@dataclass(frozen=True, slots=True)
class SavedWalk:
    """An interrupted walk persisted between launches."""

    path: Ring
    total_distance: float = 0.0
    started_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Territory:
    id: str
    owner_id: str
    ring: Ring
    bounding_box: BoundingBox
    area: float
    created_at: datetime
    is_active: bool = True
    point_count: int = 0
    distance_walked: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    path: Ring = ()
    attempt_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "ring": coordinates_to_payload(self.ring),
            "bbox": self.bounding_box.to_payload(),
            "area": self.area,
            "created_at": _isoformat(self.created_at),
            "is_active": self.is_active,
            "point_count": self.point_count,
            "distance_walked": self.distance_walked,
            "started_at": _isoformat(self.started_at),
            "completed_at": _isoformat(self.completed_at),
            "path": coordinates_to_payload(self.path),
            "attempt_id": self.attempt_id,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Territory":
        ring = coordinates_from_payload(payload.get("ring") or [])
        bbox_payload = payload.get("bbox")
        bbox = (
            BoundingBox.from_payload(bbox_payload)
            if bbox_payload
            else BoundingBox.from_points(ring)
        )
        created_at = parse_timestamp(payload.get("created_at"))
        if created_at is None:
            raise ValueError("Territory payload is missing created_at")
        return cls(
            id=str(payload["id"]),
            owner_id=str(payload["owner_id"]),
            ring=ring,
            bounding_box=bbox,
            area=float(payload.get("area", 0.0)),
            created_at=created_at,
            is_active=bool(payload.get("is_active", True)),
            point_count=int(payload.get("point_count") or 0),
            distance_walked=float(payload.get("distance_walked") or 0.0),
            started_at=parse_timestamp(payload.get("started_at")),
            completed_at=parse_timestamp(payload.get("completed_at")),
            path=coordinates_from_payload(payload.get("path") or []),
            attempt_id=payload.get("attempt_id"),
        )


@dataclass(slots=True)
class ClaimUploadRequest:
    """Payload sent to the claim upload RPC.

    ``area``, ``point_count`` and ``bounding_box`` are advisory: the server
    recomputes them from the polygon it finally stores.
    """

    owner_id: str
    path: List[LatLon]
    polygon_wkt: str = ""
    bounding_box: Optional[BoundingBox] = None
    area: float = 0.0
    point_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    distance_walked: float = 0.0
    attempt_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "path": coordinates_to_payload(self.path),
            "polygon_wkt": self.polygon_wkt,
            "bbox": self.bounding_box.to_payload() if self.bounding_box else None,
            "area": self.area,
            "point_count": self.point_count,
            "started_at": _isoformat(self.started_at),
            "completed_at": _isoformat(self.completed_at),
            "distance_walked": self.distance_walked,
            "attempt_id": self.attempt_id,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClaimUploadRequest":
        bbox_payload = payload.get("bbox")
        return cls(
            owner_id=str(payload.get("owner_id") or ""),
            path=list(coordinates_from_payload(payload.get("path") or [])),
            polygon_wkt=str(payload.get("polygon_wkt") or ""),
            bounding_box=(
                BoundingBox.from_payload(bbox_payload) if bbox_payload else None
            ),
            area=float(payload.get("area") or 0.0),
            point_count=int(payload.get("point_count") or 0),
            started_at=parse_timestamp(payload.get("started_at")),
            completed_at=parse_timestamp(payload.get("completed_at")),
            distance_walked=float(payload.get("distance_walked") or 0.0),
            attempt_id=payload.get("attempt_id") or None,
        )


def coordinates_to_payload(points: Sequence[LatLon]) -> List[Dict[str, float]]:
    """Serialise coordinates as ``[{"lat": .., "lon": ..}, ...]``."""

    return [{"lat": float(lat), "lon": float(lon)} for lat, lon in points]


def coordinates_from_payload(raw: Iterable[Any]) -> Ring:
    """Parse ``{"lat", "lon"}`` mappings or ``[lat, lon]`` pairs into a ring."""

    points: List[LatLon] = []
    for item in raw:
        if isinstance(item, Mapping):
            lat, lon = item.get("lat"), item.get("lon")
        else:
            lat, lon = item
        if lat is None or lon is None:
            raise ValueError(f"Malformed coordinate: {item!r}")
        points.append((float(lat), float(lon)))
    return tuple(points)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
