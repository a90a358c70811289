"""Ring helpers: normalisation, self-intersection, containment and distance.

Coordinates are ``(lat, lon)`` tuples. Planar tests treat longitude as x and
latitude as y, which is adequate for the small polygons walked by a player.
"""

from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np
from shapely.geometry import LinearRing

from ..models import LatLon, Ring
from .distance import MetricArray, project_equirectangular


def normalize_ring(points: Sequence[LatLon]) -> List[LatLon]:
    """Drop consecutive duplicates and the closing duplicate of a ring."""

    ring: List[LatLon] = []
    for point in points:
        if not ring or ring[-1] != point:
            ring.append((float(point[0]), float(point[1])))
    while len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    return ring


def close_ring(points: Sequence[LatLon]) -> Ring:
    """Return ``points`` as a tuple whose last vertex repeats the first."""

    ring = tuple(points)
    if ring and ring[0] != ring[-1]:
        ring = ring + (ring[0],)
    return ring


def ring_to_wkt(points: Sequence[LatLon], srid: int = 4326) -> str:
    """Encode a ring as EWKT (``SRID=4326;POLYGON((lon lat, ...))``)."""

    ring = close_ring(normalize_ring(points))
    if len(ring) < 4:
        return ""
    body = ", ".join(f"{lon!r} {lat!r}" for lat, lon in ring)
    return f"SRID={srid};POLYGON(({body}))"


def ring_self_intersects(points: Sequence[LatLon]) -> bool:
    """Return True when any two non-adjacent edges of the ring touch or cross."""

    ring = normalize_ring(points)
    # A triangle cannot cross itself; collinear ones are caught by the area test.
    if len(ring) < 4:
        return False
    return not LinearRing([(lon, lat) for lat, lon in ring]).is_simple


def ring_array(points: Sequence[LatLon]) -> MetricArray:
    """Return an open ring as an ``(n, 2)`` array of ``(lon, lat)`` pairs."""

    ring = normalize_ring(points)
    if not ring:
        return np.empty((0, 2), dtype=float)
    array = np.asarray(ring, dtype=float)
    return array[:, ::-1].copy()


def point_in_ring(point: LatLon, ring_xy: MetricArray) -> bool:
    """Ray-casting (odd/even) containment test against an open lon/lat ring."""

    if len(ring_xy) < 3:
        return False
    y, x = point
    xi = ring_xy[:, 0]
    yi = ring_xy[:, 1]
    xj = np.roll(xi, 1)
    yj = np.roll(yi, 1)
    straddles = (yi > y) != (yj > y)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
    crossings = straddles & (x < x_cross)
    return bool(np.count_nonzero(crossings) % 2 == 1)


def distance_to_ring_m(point: LatLon, points: Sequence[LatLon]) -> float:
    """Return the minimum distance (metres) from ``point`` to the ring's edges.

    Each edge is treated as a segment: the point is projected onto it and the
    parametric position clamped to [0, 1].
    """

    ring = normalize_ring(points)
    if not ring:
        return math.inf
    metric = project_equirectangular(ring, origin=point)
    starts = metric
    ends = np.roll(metric, -1, axis=0)
    seg = ends - starts
    lengths_sq = np.einsum("ij,ij->i", seg, seg)
    # The probe sits at the projection origin.
    to_point = -starts
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(
            lengths_sq > 0,
            np.einsum("ij,ij->i", to_point, seg) / lengths_sq,
            0.0,
        )
    t = np.clip(t, 0.0, 1.0)
    nearest = starts + seg * t[:, None]
    distances = np.linalg.norm(nearest, axis=1)
    return float(np.min(distances))


__all__ = [
    "normalize_ring",
    "close_ring",
    "ring_to_wkt",
    "ring_self_intersects",
    "ring_array",
    "point_in_ring",
    "distance_to_ring_m",
]
