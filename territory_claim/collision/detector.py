"""Proximity and containment checks against other players' territories."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from ..config import COLLISION_CAUTION_M, COLLISION_DANGER_M, COLLISION_WARNING_M
from ..geo.distance import MetricArray
from ..geo.polygon import distance_to_ring_m, normalize_ring, point_in_ring, ring_array
from ..models import (
    BoundingBox,
    CollisionResult,
    LatLon,
    Territory,
    TrackedPath,
    WarningLevel,
)

PathInput = Union[TrackedPath, Sequence[LatLon]]

# Extra slack on the prefilter so rounding never hides a territory inside the
# caution band.
_PREFILTER_MARGIN = 1.1


@dataclass(frozen=True, slots=True)
class PreparedTerritory:
    """Territory with the arrays the inner loops need, built once per refresh."""

    territory: Territory
    owner_key: str
    ring: Tuple[LatLon, ...]
    ring_xy: MetricArray
    bounding_box: BoundingBox


def _owner_key(owner_id: Optional[str]) -> str:
    return (owner_id or "").strip().lower()


class CollisionDetector:
    """Classify how close a point or path is to foreign territory.

    The detector only reports; callers decide whether a violation stops a
    claim. The comparison universe is swapped atomically by
    :meth:`update_territories` so checks running on another thread always see
    a consistent set.
    """

    def __init__(
        self,
        territories: Iterable[Territory] = (),
        *,
        danger_m: float = COLLISION_DANGER_M,
        warning_m: float = COLLISION_WARNING_M,
        caution_m: float = COLLISION_CAUTION_M,
        logger: logging.Logger | None = None,
    ) -> None:
        if not 0 < danger_m <= warning_m <= caution_m:
            raise ValueError("Expected 0 < danger_m <= warning_m <= caution_m")
        self.danger_m = danger_m
        self.warning_m = warning_m
        self.caution_m = caution_m
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._prepared: Tuple[PreparedTerritory, ...] = ()
        self.update_territories(territories)

    @property
    def territories(self) -> Tuple[Territory, ...]:
        return tuple(item.territory for item in self._prepared)

    def update_territories(self, territories: Iterable[Territory]) -> None:
        prepared = []
        for territory in territories:
            if not territory.is_active:
                continue
            ring = tuple(normalize_ring(territory.ring))
            if len(ring) < 3:
                self._log.debug(
                    "Skipping territory %s with %d vertices", territory.id, len(ring)
                )
                continue
            prepared.append(
                PreparedTerritory(
                    territory=territory,
                    owner_key=_owner_key(territory.owner_id),
                    ring=ring,
                    ring_xy=ring_array(ring),
                    bounding_box=BoundingBox.from_points(ring),
                )
            )
        self._prepared = tuple(prepared)
        self._log.debug("Collision universe holds %d territories", len(prepared))

    def classify_distance(self, distance_m: float) -> WarningLevel:
        if distance_m < self.danger_m:
            return WarningLevel.DANGER
        if distance_m < self.warning_m:
            return WarningLevel.WARNING
        if distance_m < self.caution_m:
            return WarningLevel.CAUTION
        return WarningLevel.SAFE

    def check_point(
        self, point: LatLon, excluding_owner_id: Optional[str]
    ) -> CollisionResult:
        """Return the collision band for a single coordinate."""

        return self._check_point(point, _owner_key(excluding_owner_id), self._prepared)

    def check_path_comprehensive(
        self, path: PathInput, excluding_owner_id: Optional[str]
    ) -> CollisionResult:
        """Check every vertex of ``path``; the most severe band wins."""

        points = path.points if isinstance(path, TrackedPath) else path
        prepared = self._prepared
        owner = _owner_key(excluding_owner_id)
        worst = CollisionResult.safe()
        for vertex in points:
            result = self._check_point(vertex, owner, prepared)
            if _is_worse(result, worst):
                worst = result
            if worst.warning_level is WarningLevel.VIOLATION:
                break
        return worst

    def _candidates(
        self,
        point: LatLon,
        owner: str,
        prepared: Tuple[PreparedTerritory, ...],
    ) -> Iterable[PreparedTerritory]:
        probe = BoundingBox(point[0], point[0], point[1], point[1]).expand(
            self.caution_m * _PREFILTER_MARGIN
        )
        for item in prepared:
            if owner and item.owner_key == owner:
                continue
            if item.bounding_box.intersects(probe):
                yield item

    def _check_point(
        self,
        point: LatLon,
        owner: str,
        prepared: Tuple[PreparedTerritory, ...],
    ) -> CollisionResult:
        nearest: Optional[PreparedTerritory] = None
        min_distance = math.inf
        for item in self._candidates(point, owner, prepared):
            if point_in_ring(point, item.ring_xy):
                return CollisionResult(
                    warning_level=WarningLevel.VIOLATION,
                    distance_meters=0.0,
                    message="Inside another player's territory",
                    offending_territory_id=item.territory.id,
                )
            distance = distance_to_ring_m(point, item.ring)
            if distance < min_distance:
                min_distance = distance
                nearest = item

        if nearest is None:
            return CollisionResult.safe()
        level = self.classify_distance(min_distance)
        return CollisionResult(
            warning_level=level,
            distance_meters=min_distance,
            message=_band_message(level, min_distance),
            offending_territory_id=(
                nearest.territory.id if level is not WarningLevel.SAFE else None
            ),
        )


def _is_worse(candidate: CollisionResult, current: CollisionResult) -> bool:
    if candidate.warning_level != current.warning_level:
        return candidate.warning_level > current.warning_level
    if candidate.distance_meters is None:
        return False
    if current.distance_meters is None:
        return True
    return candidate.distance_meters < current.distance_meters


def _band_message(level: WarningLevel, distance_m: float) -> Optional[str]:
    if level is WarningLevel.DANGER:
        return f"About to enter another player's territory ({distance_m:.0f} m)"
    if level is WarningLevel.WARNING:
        return f"Close to another player's territory ({distance_m:.0f} m)"
    if level is WarningLevel.CAUTION:
        return f"Approaching another player's territory ({distance_m:.0f} m)"
    return None


__all__ = ["CollisionDetector", "PreparedTerritory"]
