"""
Domain service: multi-sensor resolution harmonization.

Radar and lidar composites are resampled (bilinear) and reprojected onto the
optical grid. The canopy height band is only present when a lidar composite
is supplied; a missing lidar composite is never replaced by a fill value.
"""
from typing import Optional, Sequence
import logging

from app.domain.models import Geometry
from app.domain.raster import GridSpec, Raster
from app.services.domain.band_algebra import OPTICAL_INDEX_BANDS, RADAR_BANDS
from app.utils.geo_projection import WGS84
from app.utils.spatial_helpers import grid_footprint, grid_for_geometry, resample_bilinear

logger = logging.getLogger(__name__)

CANOPY_HEIGHT_BAND = "CanopyHeight"
TARGET_SCALE_M = 10
TARGET_CRS = WGS84


def target_grid(optical: GridSpec, crs: str, scale_m: float) -> GridSpec:
    """
    Grid the harmonized image is built on.

    The optical grid is used as-is when it already has the requested CRS and
    scale; otherwise a new grid covering the optical footprint is built.
    """
    if optical.crs == crs and optical.scale_m == scale_m:
        return optical
    footprint = grid_footprint(optical)
    geometry = Geometry.from_coordinates([list(footprint.exterior.coords)])
    return grid_for_geometry(geometry, scale_m, crs)


def _resample(image: Raster, bands: Sequence[str], target: GridSpec) -> dict:
    if image.grid == target:
        return {band: image.band(band) for band in bands}
    return {band: resample_bilinear(image.band(band), image.grid, target) for band in bands}


def harmonize(
    optical: Raster,
    radar: Raster,
    lidar: Optional[Raster] = None,
    crs: str = TARGET_CRS,
    scale_m: float = TARGET_SCALE_M,
) -> Raster:
    """
    Stack optical, radar and (optionally) lidar bands on one grid.

    Args:
        optical: Optical composite with NDVI, EVI and LAI
        radar: Radar composite with VV, VH and RVI
        lidar: Lidar composite with CanopyHeight, or None when there is no coverage
        crs: Output CRS
        scale_m: Output resolution in meters

    Returns:
        Raster with NDVI, EVI, LAI, VV, VH, RVI and, when lidar is given, CanopyHeight
    """
    target = target_grid(optical.grid, crs, scale_m)

    bands = _resample(optical, OPTICAL_INDEX_BANDS, target)
    bands.update(_resample(radar, RADAR_BANDS, target))

    if lidar is not None:
        bands.update(_resample(lidar, [CANOPY_HEIGHT_BAND], target))
        logger.debug("Harmonized image includes canopy height")
    else:
        logger.debug("Harmonized image without canopy height")

    return Raster(bands, target)
