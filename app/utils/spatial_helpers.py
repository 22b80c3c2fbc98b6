"""
Spatial analysis helper functions for in-memory rasters.

Provides utilities for:
- Polygon rasterization (pixel-center containment)
- Bilinear and nearest-neighbour resampling between grids
- Grid construction around a polygon
- Raster footprints for bounds filtering
- Geodesic pixel coverage areas
"""
import logging
import math

import numpy as np
import shapely
from scipy import ndimage
from shapely.geometry import Polygon

from app.domain.models import Geometry
from app.domain.raster import GridSpec
from app.utils.geo_projection import (
    WGS84,
    geodesic_shape_area_m2,
    meters_to_degrees,
    to_shapely,
    transform_coordinates,
)

logger = logging.getLogger(__name__)

# Minimum interpolation weight of valid neighbours for a resampled pixel to be defined
MIN_VALID_WEIGHT = 1e-6


def polygon_mask(geometry: Geometry, grid: GridSpec) -> np.ndarray:
    """
    Rasterize a polygon onto a grid.

    A pixel belongs to the polygon when its center lies inside it.

    Args:
        geometry: Polygon in lon/lat
        grid: Target grid

    Returns:
        Boolean array with the grid's shape
    """
    xs, ys = grid.pixel_centers()
    lons, lats = transform_coordinates(xs, ys, grid.crs, WGS84)
    polygon = to_shapely(geometry)
    return shapely.contains_xy(polygon, lons, lats)


def grid_footprint(grid: GridSpec) -> Polygon:
    """
    Return the grid's extent as a lon/lat polygon.
    """
    min_x, min_y, max_x, max_y = grid.bounds
    xs = np.array([min_x, max_x, max_x, min_x])
    ys = np.array([min_y, min_y, max_y, max_y])
    lons, lats = transform_coordinates(xs, ys, grid.crs, WGS84)
    return Polygon(list(zip(lons, lats)))


def intersects_geometry(grid: GridSpec, geometry: Geometry) -> bool:
    """Check whether a grid's footprint overlaps a polygon."""
    return grid_footprint(grid).intersects(to_shapely(geometry))


def grid_for_geometry(
    geometry: Geometry,
    scale_m: float,
    crs: str = WGS84,
) -> GridSpec:
    """
    Build a north-up grid covering a polygon's bounding box.

    Args:
        geometry: Polygon in lon/lat
        scale_m: Nominal pixel size in meters
        crs: Grid CRS (EPSG:4326 grids use degree-sized pixels)

    Returns:
        GridSpec snapped outward to whole pixels
    """
    min_lon, min_lat, max_lon, max_lat = to_shapely(geometry).bounds
    min_x, min_y = transform_coordinates(np.array([min_lon]), np.array([min_lat]), WGS84, crs)
    max_x, max_y = transform_coordinates(np.array([max_lon]), np.array([max_lat]), WGS84, crs)

    pixel = meters_to_degrees(scale_m) if crs == WGS84 else scale_m
    width = max(1, math.ceil((float(max_x[0]) - float(min_x[0])) / pixel))
    height = max(1, math.ceil((float(max_y[0]) - float(min_y[0])) / pixel))

    return GridSpec(
        crs=crs,
        origin_x=float(min_x[0]),
        origin_y=float(max_y[0]),
        pixel_width=pixel,
        pixel_height=pixel,
        width=width,
        height=height,
        scale_m=scale_m,
    )


def resample_bilinear(
    values: np.ndarray,
    source: GridSpec,
    target: GridSpec,
) -> np.ndarray:
    """
    Resample a band onto another grid with bilinear interpolation.

    Masked (NaN) source pixels are excluded from the interpolation by
    normalizing with the interpolated validity weights, so a masked
    neighbour never turns a defined pixel into NaN. Target pixels with no
    valid neighbour stay NaN.

    Args:
        values: Source band array (NaN = masked)
        source: Grid of the source band
        target: Grid to resample onto

    Returns:
        Array with the target grid's shape
    """
    xs, ys = target.pixel_centers()
    sx, sy = transform_coordinates(xs, ys, target.crs, source.crs)
    rows, cols = source.fractional_index(sx, sy)
    coordinates = np.array([rows, cols])

    valid = np.isfinite(values)
    filled = np.where(valid, values, 0.0)

    interpolated = ndimage.map_coordinates(
        filled, coordinates, order=1, mode="grid-constant", cval=0.0
    )
    weights = ndimage.map_coordinates(
        valid.astype(np.float64), coordinates, order=1, mode="grid-constant", cval=0.0
    )

    result = np.full(target.shape, np.nan)
    defined = weights > MIN_VALID_WEIGHT
    result[defined] = interpolated[defined] / weights[defined]
    return result


def resample_nearest(
    values: np.ndarray,
    source: GridSpec,
    target: GridSpec,
) -> np.ndarray:
    """
    Resample a categorical band onto another grid by nearest neighbour.

    Target pixels falling outside the source grid are NaN.
    """
    xs, ys = target.pixel_centers()
    sx, sy = transform_coordinates(xs, ys, target.crs, source.crs)
    rows, cols = source.fractional_index(sx, sy)
    rows = np.rint(rows).astype(np.int64)
    cols = np.rint(cols).astype(np.int64)

    inside = (rows >= 0) & (rows < source.height) & (cols >= 0) & (cols < source.width)
    result = np.full(target.shape, np.nan)
    result[inside] = values[rows[inside], cols[inside]]
    return result


def decimate(values: np.ndarray, max_pixels: float) -> np.ndarray:
    """
    Subsample a flat pixel array down to a pixel budget.

    Args:
        values: 1D array of pixel values
        max_pixels: Maximum number of pixels to keep

    Returns:
        Every n-th pixel so that at most max_pixels remain
    """
    stride = math.ceil(values.size / max_pixels)
    logger.debug(f"Decimating {values.size} pixels with stride {stride}")
    return values[::stride]


def pixel_coverage_areas(geometry: Geometry, grid: GridSpec) -> np.ndarray:
    """
    Geodesic area of the part of each pixel that lies inside a polygon.

    Summed over a grid that covers the polygon, the areas add up to the
    polygon's own geodesic area.

    Args:
        geometry: Polygon in lon/lat
        grid: Grid whose pixels are intersected with the polygon

    Returns:
        Array of square meters with the grid's shape (0 outside the polygon)
    """
    polygon = to_shapely(geometry)

    xs = grid.origin_x + np.arange(grid.width + 1) * grid.pixel_width
    ys = grid.origin_y - np.arange(grid.height + 1) * grid.pixel_height
    left, top = np.meshgrid(xs[:-1], ys[:-1])
    right, bottom = np.meshgrid(xs[1:], ys[1:])
    cells = shapely.box(left.ravel(), bottom.ravel(), right.ravel(), top.ravel())

    if grid.crs != WGS84:
        cells = shapely.transform(
            cells,
            lambda xy: np.column_stack(transform_coordinates(xy[:, 0], xy[:, 1], grid.crs, WGS84)),
        )

    areas = np.zeros(cells.size)
    candidates = np.flatnonzero(shapely.intersects(cells, polygon))
    pieces = shapely.intersection(cells[candidates], polygon)
    for index, piece in zip(candidates, pieces):
        areas[index] = geodesic_shape_area_m2(piece)

    return areas.reshape(grid.shape)
