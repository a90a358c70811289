"""Geometry validation and repair for walked territories."""

from .repair import parse_polygon_wkt, repair_polygon
from .validator import GeometryValidator

__all__ = ["GeometryValidator", "parse_polygon_wkt", "repair_polygon"]
