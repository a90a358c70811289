"""Turn a closed walk into a claimable simple polygon."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple, Union

from shapely.geometry.polygon import orient

from ..config import (
    VALIDATION_MIN_AREA_M2,
    VALIDATION_MIN_WALK_DISTANCE_M,
    VALIDATION_ZERO_AREA_M2,
)
from ..errors import GeometryError, GeometryErrorKind
from ..geo.distance import planar_area
from ..geo.polygon import normalize_ring, ring_self_intersects
from ..models import BoundingBox, LatLon, TrackedPath, ValidatedPolygon
from .repair import polygon_from_ring, repair_polygon, ring_from_polygon

PathInput = Union[TrackedPath, Sequence[LatLon]]


class GeometryValidator:
    """Pure validator: the same path always yields the same polygon."""

    def __init__(
        self,
        *,
        min_area_m2: float = VALIDATION_MIN_AREA_M2,
        min_walk_distance_m: float = VALIDATION_MIN_WALK_DISTANCE_M,
        zero_area_m2: float = VALIDATION_ZERO_AREA_M2,
        logger: logging.Logger | None = None,
    ) -> None:
        self.min_area_m2 = max(0.0, min_area_m2)
        self.min_walk_distance_m = max(0.0, min_walk_distance_m)
        self.zero_area_m2 = max(0.0, zero_area_m2)
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def validate(self, path: PathInput) -> ValidatedPolygon:
        """Validate (and if needed repair) a closed path.

        Args:
            path: A :class:`TrackedPath` or a plain sequence of ``(lat, lon)``
                vertices. A plain sequence skips the walked-distance gate.

        Returns:
            The canonical :class:`ValidatedPolygon`.

        Raises:
            GeometryError: When the path has too few vertices, was too short,
                encloses no usable area, or cannot be repaired.
        """

        points, walked = _coerce_path(path)
        ring = normalize_ring(points)
        if len(ring) < 3:
            raise GeometryError(
                GeometryErrorKind.TOO_FEW_POINTS,
                f"At least 3 distinct vertices are required (got {len(ring)})",
            )
        if (
            walked is not None
            and self.min_walk_distance_m > 0
            and walked < self.min_walk_distance_m
        ):
            raise GeometryError(
                GeometryErrorKind.WALK_TOO_SHORT,
                f"Walked {walked:.0f} m; at least "
                f"{self.min_walk_distance_m:.0f} m is required",
            )

        edges_simple = not ring_self_intersects(ring)
        if edges_simple and planar_area(ring) <= self.zero_area_m2:
            raise GeometryError(
                GeometryErrorKind.ZERO_AREA, "The walked loop encloses no area"
            )

        polygon = polygon_from_ring(ring)
        repaired = False
        if edges_simple and polygon.is_valid:
            final = orient(polygon, sign=1.0)
        else:
            self._log.info(
                "Ring with %d vertices self-intersects; attempting repair", len(ring)
            )
            fixed = repair_polygon(polygon)
            if fixed is None:
                raise GeometryError(
                    GeometryErrorKind.UNREPAIRABLE,
                    "The walked loop crosses itself and cannot be repaired",
                )
            final = fixed
            repaired = True

        final_ring = ring_from_polygon(final)
        distinct = len(final_ring) - 1
        area = planar_area(final_ring)
        if distinct < 3 or area <= self.zero_area_m2:
            raise GeometryError(
                GeometryErrorKind.UNREPAIRABLE,
                "Repair left a degenerate polygon",
            )
        if area < self.min_area_m2:
            raise GeometryError(
                GeometryErrorKind.AREA_TOO_SMALL,
                f"Enclosed area {area:.0f} m² is below the "
                f"{self.min_area_m2:.0f} m² minimum",
            )
        if repaired:
            self._log.info(
                "Repaired polygon keeps %d vertices and %.0f m²", distinct, area
            )
        return ValidatedPolygon(
            ring=final_ring,
            area=area,
            point_count=distinct,
            bounding_box=BoundingBox.from_points(final_ring),
            repaired=repaired,
        )


def _coerce_path(path: PathInput) -> Tuple[Sequence[LatLon], Optional[float]]:
    if isinstance(path, TrackedPath):
        return path.points, path.total_distance
    return list(path), None


__all__ = ["GeometryValidator"]
