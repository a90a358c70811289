"""Shapely-backed polygon parsing and validity repair.

Shared by the on-device validator and the server-side upload service so both
apply the same largest-component policy to self-intersecting rings.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from shapely import wkt as shapely_wkt
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.validation import make_valid

from ..geo.distance import planar_area
from ..geo.polygon import close_ring, normalize_ring
from ..models import LatLon, Ring

_SRID_PREFIX = re.compile(r"^\s*SRID=\d+;", re.IGNORECASE)


def polygon_from_ring(points: Sequence[LatLon]) -> Polygon:
    """Build a lon/lat shapely polygon from ``(lat, lon)`` vertices."""

    ring = normalize_ring(points)
    if len(ring) < 3:
        raise ValueError("A polygon needs at least three distinct vertices")
    return Polygon([(lon, lat) for lat, lon in ring])


def ring_from_polygon(polygon: Polygon) -> Ring:
    """Return the polygon's exterior as a closed ring of ``(lat, lon)``."""

    coords = [(float(y), float(x)) for x, y in polygon.exterior.coords]
    return close_ring(normalize_ring(coords))


def polygon_area_m2(polygon: Polygon) -> float:
    return planar_area(normalize_ring(ring_from_polygon(polygon)))


def parse_polygon_wkt(text: str) -> BaseGeometry:
    """Parse WKT or EWKT (``SRID=4326;POLYGON(...)``) into a geometry.

    Raises:
        ValueError: If the text is empty or not parseable.
    """

    cleaned = _SRID_PREFIX.sub("", text or "").strip()
    if not cleaned:
        raise ValueError("Empty polygon WKT")
    try:
        return shapely_wkt.loads(cleaned)
    except Exception as exc:
        raise ValueError(f"Cannot parse polygon WKT: {exc}") from exc


def polygon_parts(geometry: BaseGeometry) -> List[Polygon]:
    """Flatten any geometry into its non-empty polygon components."""

    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    parts: List[Polygon] = []
    for member in getattr(geometry, "geoms", ()):
        parts.extend(polygon_parts(member))
    return parts


def largest_polygon(geometry: BaseGeometry) -> Optional[Polygon]:
    """Return the polygon component with the largest metric area.

    Ties keep the first component in GEOS order.
    """

    parts = polygon_parts(geometry)
    if not parts:
        return None
    return max(parts, key=polygon_area_m2)


def repair_polygon(geometry: BaseGeometry) -> Optional[Polygon]:
    """Return a valid, hole-free, counter-clockwise polygon or None.

    Invalid input is passed through ``make_valid``; when that yields several
    components only the largest survives.
    """

    if geometry.is_empty:
        return None
    candidate: Optional[BaseGeometry] = geometry
    if not geometry.is_valid:
        candidate = make_valid(geometry)
    selected = largest_polygon(candidate) if candidate is not None else None
    if selected is None or selected.is_empty:
        return None
    shell = Polygon(selected.exterior)
    if shell.is_empty or not shell.is_valid:
        return None
    return orient(shell, sign=1.0)


__all__ = [
    "polygon_from_ring",
    "ring_from_polygon",
    "polygon_area_m2",
    "parse_polygon_wkt",
    "polygon_parts",
    "largest_polygon",
    "repair_polygon",
]
