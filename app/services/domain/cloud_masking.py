"""
Domain service: per-scene quality masking applied before compositing.
"""
import logging

import numpy as np

from app.domain.raster import Raster

logger = logging.getLogger(__name__)

QA_BAND = "QA60"
CLOUD_BIT_MASK = 1 << 10
CIRRUS_BIT_MASK = 1 << 11
REFLECTANCE_SCALE = 10000.0
REFLECTANCE_BANDS = ("B2", "B4", "B8")

LIDAR_HEIGHT_BAND = "rh98"
LIDAR_QUALITY_BAND = "quality_flag"
LIDAR_DEGRADE_BAND = "degrade_flag"


def cloud_free_mask(image: Raster) -> np.ndarray:
    """
    Boolean mask of pixels with neither the cloud nor the cirrus QA bit set.

    Images without a QA band pass every pixel.
    """
    if not image.has_band(QA_BAND):
        logger.debug(f"No {QA_BAND} band present, cloud mask passes all pixels")
        return np.ones(image.grid.shape, dtype=bool)

    qa = np.nan_to_num(image.band(QA_BAND), nan=0.0).astype(np.int64)
    return ((qa & CLOUD_BIT_MASK) == 0) & ((qa & CIRRUS_BIT_MASK) == 0)


def mask_clouds(image: Raster) -> Raster:
    """
    Mask cloudy and cirrus pixels and rescale digital numbers to reflectance.

    Args:
        image: Sentinel-2 scene with B2, B4, B8 and (optionally) QA60

    Returns:
        Raster holding only the reflectance bands, masked pixels set to NaN
    """
    mask = cloud_free_mask(image)
    return Raster(
        {
            band: np.where(mask, image.band(band) / REFLECTANCE_SCALE, np.nan)
            for band in REFLECTANCE_BANDS
        },
        image.grid,
    )


def mask_lidar_quality(image: Raster) -> Raster:
    """
    Keep lidar heights only for good-quality, non-degraded shots.

    Args:
        image: GEDI raster with rh98 and (optionally) quality/degrade flags

    Returns:
        Raster with a single rh98 band
    """
    heights = image.band(LIDAR_HEIGHT_BAND)
    keep = np.isfinite(heights)
    if image.has_band(LIDAR_QUALITY_BAND):
        keep &= image.band(LIDAR_QUALITY_BAND) == 1
    if image.has_band(LIDAR_DEGRADE_BAND):
        keep &= image.band(LIDAR_DEGRADE_BAND) == 0
    return Raster({LIDAR_HEIGHT_BAND: np.where(keep, heights, np.nan)}, image.grid)
