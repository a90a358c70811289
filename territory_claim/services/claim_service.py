"""Authoritative server-side handling of territory claims.

The service never trusts client geometry: the polygon is re-parsed, repaired
with the same largest-component policy the device uses, and its area and
bounding box are recomputed before the single atomic insert.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from ..config import CLAIM_REJECT_OVERLAPS, VALIDATION_ZERO_AREA_M2
from ..errors import (
    AuthenticationError,
    OwnershipError,
    PolygonParseError,
    TerritoryNotFoundError,
    UnrepairablePolygonError,
)
from ..geo.distance import planar_area
from ..models import BoundingBox, ClaimUploadRequest, Territory
from ..validation.repair import (
    parse_polygon_wkt,
    polygon_from_ring,
    repair_polygon,
    ring_from_polygon,
)
from .repository import TerritoryRepository, owner_key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_territory_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class ClaimServiceConfig:
    reject_overlaps: bool = CLAIM_REJECT_OVERLAPS
    zero_area_m2: float = VALIDATION_ZERO_AREA_M2
    id_factory: Callable[[], str] = field(default=_new_territory_id)
    clock: Callable[[], datetime] = field(default=_utcnow)
    logger: logging.Logger | None = None


class ClaimUploadService:
    def __init__(
        self,
        repository: TerritoryRepository,
        config: ClaimServiceConfig | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or ClaimServiceConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def upload(
        self, caller_id: Optional[str], request: ClaimUploadRequest
    ) -> Territory:
        """Validate, repair and store one claim.

        Raises:
            AuthenticationError: No caller identity.
            OwnershipError: ``request.owner_id`` is not the caller.
            PolygonParseError: The polygon text or ring cannot be parsed.
            UnrepairablePolygonError: Repair leaves nothing claimable.
            TerritoryOverlapError: The claim overlaps an active territory.
        """

        self._authorize(caller_id, request.owner_id)
        geometry = self._parse(request)
        polygon = repair_polygon(geometry)
        if polygon is None:
            raise UnrepairablePolygonError("Polygon is empty after repair")
        ring = ring_from_polygon(polygon)
        area = planar_area(ring)
        if len(ring) - 1 < 3 or area <= self.config.zero_area_m2:
            raise UnrepairablePolygonError("Polygon is degenerate after repair")
        if not geometry.is_valid or isinstance(geometry, MultiPolygon):
            self._log.info(
                "Repaired claim from owner=%s to %d vertices",
                request.owner_id,
                len(ring) - 1,
            )

        now = self.config.clock()
        territory = Territory(
            id=self.config.id_factory(),
            owner_id=request.owner_id,
            ring=ring,
            bounding_box=BoundingBox.from_points(ring),
            area=area,
            created_at=now,
            point_count=len(request.path) or len(ring) - 1,
            distance_walked=max(0.0, request.distance_walked),
            started_at=request.started_at,
            completed_at=request.completed_at or now,
            path=tuple(request.path),
            attempt_id=request.attempt_id,
        )
        return self.repository.insert_if_clear(
            territory, reject_overlaps=self.config.reject_overlaps
        )

    def increment_distance_walked(
        self, caller_id: Optional[str], owner_id: str, delta_m: float
    ) -> float:
        self._authorize(caller_id, owner_id)
        total = self.repository.increment_distance(owner_id, float(delta_m))
        self._log.debug(
            "owner=%s walked +%.1f m (total %.1f m)", owner_id, delta_m, total
        )
        return total

    def list_active_territories(self) -> List[Territory]:
        return self.repository.list_active()

    def deactivate(self, caller_id: Optional[str], territory_id: str) -> Territory:
        if not caller_id:
            raise AuthenticationError("Caller is not authenticated")
        territory = self.repository.get(territory_id)
        if territory is None:
            raise TerritoryNotFoundError(f"Unknown territory {territory_id}")
        if owner_key(territory.owner_id) != owner_key(caller_id):
            raise OwnershipError("Only the owner may deactivate a territory")
        return self.repository.deactivate(territory_id)

    @staticmethod
    def _authorize(caller_id: Optional[str], owner_id: Optional[str]) -> None:
        if not caller_id:
            raise AuthenticationError("Caller is not authenticated")
        if owner_key(owner_id) != owner_key(caller_id):
            raise OwnershipError("owner_id does not match the authenticated caller")

    @staticmethod
    def _parse(request: ClaimUploadRequest) -> BaseGeometry:
        if request.polygon_wkt:
            try:
                geometry = parse_polygon_wkt(request.polygon_wkt)
            except ValueError as exc:
                raise PolygonParseError(str(exc)) from exc
        elif request.path:
            try:
                geometry = polygon_from_ring(request.path)
            except ValueError as exc:
                raise PolygonParseError(str(exc)) from exc
        else:
            raise PolygonParseError("Request carries neither polygon_wkt nor path")
        if geometry.is_empty or not isinstance(geometry, (Polygon, MultiPolygon)):
            raise PolygonParseError(
                f"Expected a polygon, got {geometry.geom_type or 'empty geometry'}"
            )
        return geometry


__all__ = ["ClaimServiceConfig", "ClaimUploadService"]
