"""Polygon overlap test between a candidate claim and stored territories."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from shapely.geometry import Polygon

from ..models import BoundingBox, LatLon, Territory
from ..validation.repair import polygon_from_ring, repair_polygon

_LOGGER = logging.getLogger(__name__)


def _territory_polygon(territory: Territory) -> Optional[Polygon]:
    try:
        polygon = polygon_from_ring(territory.ring)
    except ValueError:
        return None
    if polygon.is_valid:
        return polygon
    return repair_polygon(polygon)


def find_overlap(
    ring: Sequence[LatLon] | Polygon,
    territories: Iterable[Territory],
) -> Optional[Territory]:
    """Return the first active territory sharing interior area with ``ring``.

    Shared edges or single shared vertices do not count as overlap.
    """

    candidate = ring if isinstance(ring, Polygon) else polygon_from_ring(ring)
    if candidate.is_empty:
        return None
    min_lon, min_lat, max_lon, max_lat = candidate.bounds
    bbox = BoundingBox(min_lat, max_lat, min_lon, max_lon)
    for territory in territories:
        if not territory.is_active:
            continue
        if not bbox.intersects(territory.bounding_box):
            continue
        existing = _territory_polygon(territory)
        if existing is None:
            _LOGGER.debug("Skipping unusable territory %s", territory.id)
            continue
        if candidate.intersects(existing) and not candidate.touches(existing):
            return territory
    return None


__all__ = ["find_overlap"]
