"""Distance, projection and area helpers for city-scale coordinates."""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from pyproj import Geod

from ..config import EARTH_RADIUS_M
from ..models import LatLon

MetricArray = NDArray[np.float64]

# Spherical geodesic so great-circle distances agree with the local projection.
_GEOD = Geod(a=EARTH_RADIUS_M, b=EARTH_RADIUS_M)


def great_circle_distance(a: LatLon, b: LatLon) -> float:
    """Return the great-circle distance in metres between two coordinates."""

    if a == b:
        return 0.0
    _, _, dist = _GEOD.inv(a[1], a[0], b[1], b[0])
    return float(dist)


def path_length(points: Sequence[LatLon]) -> float:
    """Return the summed great-circle length of a polyline in metres."""

    if len(points) < 2:
        return 0.0
    lats = [p[0] for p in points]
    lons = [p[1] for p in points]
    return float(_GEOD.line_length(lons, lats))


def offset_coordinate(origin: LatLon, north_m: float, east_m: float) -> LatLon:
    """Return the coordinate ``north_m``/``east_m`` metres away from ``origin``."""

    lat0, lon0 = origin
    dlat = math.degrees(north_m / EARTH_RADIUS_M)
    cos_lat = max(math.cos(math.radians(lat0)), 1e-12)
    dlon = math.degrees(east_m / (EARTH_RADIUS_M * cos_lat))
    return (lat0 + dlat, lon0 + dlon)


def project_equirectangular(
    points: Sequence[LatLon],
    origin: Optional[LatLon] = None,
) -> MetricArray:
    """Project lat/lon points onto a local flat plane in metres.

    Longitude is scaled by cos(latitude) of the origin, which defaults to the
    mean latitude and mean longitude of ``points``.
    """

    if not points:
        return np.empty((0, 2), dtype=float)
    array = np.asarray(points, dtype=float)
    lats = array[:, 0]
    lons = array[:, 1]
    if origin is None:
        lat0 = float(np.mean(lats))
        lon0 = float(np.mean(lons))
    else:
        lat0, lon0 = origin
    scale = EARTH_RADIUS_M * math.pi / 180.0
    xs = (lons - lon0) * scale * math.cos(math.radians(lat0))
    ys = (lats - lat0) * scale
    return np.column_stack((xs, ys))


def planar_area(points: Sequence[LatLon]) -> float:
    """Return the absolute shoelace area (m²) of a ring in the local projection."""

    if len(points) < 3:
        return 0.0
    metric = project_equirectangular(points)
    xs = metric[:, 0]
    ys = metric[:, 1]
    signed = float(np.dot(xs, np.roll(ys, -1)) - np.dot(ys, np.roll(xs, -1)))
    return abs(signed) / 2.0


__all__ = [
    "MetricArray",
    "great_circle_distance",
    "path_length",
    "offset_coordinate",
    "project_equirectangular",
    "planar_area",
]
