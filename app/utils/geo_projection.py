"""
Geospatial projection utilities for coordinate transformations and geodesic measurements.
"""
from functools import lru_cache
from typing import Tuple

import numpy as np
from pyproj import Geod, Transformer
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from app.domain.models import Geometry

WGS84 = "EPSG:4326"

# Meters per degree of latitude on the WGS84 ellipsoid (mean)
METERS_PER_DEGREE = 111_320.0

_GEOD = Geod(ellps="WGS84")


@lru_cache(maxsize=64)
def get_transformer(source_crs: str, target_crs: str) -> Transformer:
    """
    Build (and cache) a transformer between two CRSs in (x, y) axis order.
    """
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def transform_coordinates(
    x: np.ndarray,
    y: np.ndarray,
    source_crs: str,
    target_crs: str,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Transform coordinate arrays between CRSs.

    Args:
        x: Easting / longitude values
        y: Northing / latitude values
        source_crs: CRS of the input coordinates
        target_crs: CRS of the output coordinates

    Returns:
        Tuple of transformed (x, y) arrays with the input shape
    """
    if source_crs == target_crs:
        return np.asarray(x, dtype=float), np.asarray(y, dtype=float)
    transformer = get_transformer(source_crs, target_crs)
    tx, ty = transformer.transform(np.asarray(x, dtype=float), np.asarray(y, dtype=float))
    return np.asarray(tx), np.asarray(ty)


def to_shapely(geometry: Geometry) -> Polygon:
    """Convert a domain Geometry to a shapely Polygon in lon/lat."""
    return Polygon(geometry.exterior, holes=list(geometry.holes))


def geodesic_shape_area_m2(shape: BaseGeometry) -> float:
    """
    Geodesic area of a lon/lat shapely geometry on the WGS84 ellipsoid.

    Multi-part geometries are summed part by part; non-areal parts count as zero.
    """
    if shape.is_empty:
        return 0.0
    if hasattr(shape, "geoms"):
        return sum(geodesic_shape_area_m2(part) for part in shape.geoms)
    if shape.geom_type != "Polygon":
        return 0.0
    # Counter-clockwise exterior so holes are subtracted
    area, _ = _GEOD.geometry_area_perimeter(orient(shape, sign=1.0))
    return abs(area)


def geodesic_area_m2(geometry: Geometry) -> float:
    """
    Compute the geodesic area of a polygon on the WGS84 ellipsoid.

    Args:
        geometry: Polygon with [longitude, latitude] rings

    Returns:
        Area in square meters
    """
    return geodesic_shape_area_m2(to_shapely(geometry))


def geodesic_area_hectares(geometry: Geometry) -> float:
    """Geodesic polygon area in hectares."""
    return geodesic_area_m2(geometry) / 10_000.0


def meters_to_degrees(meters: float) -> float:
    """Approximate a ground distance as degrees of latitude."""
    return meters / METERS_PER_DEGREE
