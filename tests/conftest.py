"""Global pytest fixtures & helpers.

Adds project root to path and provides coordinate, fix and territory
factories so walk scenarios can be described in metres from a fixed origin.
"""
from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from typing import List, Sequence

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from territory_claim.geo import offset_coordinate, planar_area
from territory_claim.models import BoundingBox, GeoFix, LatLon, Territory
from territory_claim.services import ClaimUploadService, TerritoryRepository

ORIGIN: LatLon = (51.5, -0.12)
CREATED_AT = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


# --- Factory helpers -------------------------------------------------
def at(north_m: float, east_m: float, origin: LatLon = ORIGIN) -> LatLon:
    return offset_coordinate(origin, north_m, east_m)


def square_ring(size_m: float, north_m: float = 0.0, east_m: float = 0.0) -> List[LatLon]:
    """Open counter-clockwise square with its south-west corner at the offset."""

    return [
        at(north_m, east_m),
        at(north_m, east_m + size_m),
        at(north_m + size_m, east_m + size_m),
        at(north_m + size_m, east_m),
    ]


def make_fix(
    north_m: float,
    east_m: float,
    timestamp: float,
    accuracy: float = 5.0,
) -> GeoFix:
    lat, lon = at(north_m, east_m)
    return GeoFix(latitude=lat, longitude=lon, accuracy=accuracy, timestamp=timestamp)


def square_walk(size_m: float, step_s: float = 30.0) -> List[GeoFix]:
    """Fixes walking a square and returning to the first corner."""

    corners = [(0, 0), (size_m, 0), (size_m, size_m), (0, size_m), (0, 0)]
    return [
        make_fix(north, east, index * step_s)
        for index, (north, east) in enumerate(corners)
    ]


def make_territory(
    territory_id: str,
    owner_id: str,
    ring: Sequence[LatLon],
    *,
    is_active: bool = True,
) -> Territory:
    closed = tuple(ring) + (ring[0],)
    return Territory(
        id=territory_id,
        owner_id=owner_id,
        ring=closed,
        bounding_box=BoundingBox.from_points(ring),
        area=planar_area(ring),
        created_at=CREATED_AT,
        is_active=is_active,
        point_count=len(ring),
    )


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def repository() -> TerritoryRepository:
    return TerritoryRepository()


@pytest.fixture
def claim_service(repository: TerritoryRepository) -> ClaimUploadService:
    return ClaimUploadService(repository)


@pytest.fixture
def foreign_square() -> Territory:
    """A 100 m square owned by ``bob`` with its corner at the origin."""

    return make_territory("bob-1", "bob", square_ring(100.0))
