"""Planar and great-circle geometry helpers for walked territories."""

from .distance import (
    great_circle_distance,
    offset_coordinate,
    path_length,
    planar_area,
    project_equirectangular,
)
from .polygon import (
    close_ring,
    distance_to_ring_m,
    normalize_ring,
    point_in_ring,
    ring_array,
    ring_self_intersects,
    ring_to_wkt,
)

__all__ = [
    "great_circle_distance",
    "offset_coordinate",
    "path_length",
    "planar_area",
    "project_equirectangular",
    "close_ring",
    "distance_to_ring_m",
    "normalize_ring",
    "point_in_ring",
    "ring_array",
    "ring_self_intersects",
    "ring_to_wkt",
]
