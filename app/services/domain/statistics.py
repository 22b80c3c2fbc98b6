"""
Domain service: region statistics and biomass aggregation.
"""
from typing import Optional
import logging

import numpy as np

from app.domain.models import BandStatistics
from app.utils.spatial_helpers import decimate

logger = logging.getLogger(__name__)

# Decimal places used when presenting each metric
METRIC_PRECISION = {
    "AGB": 2,
    "NDVI": 3,
    "EVI": 3,
    "RVI": 3,
    "LAI": 2,
    "VV": 2,
    "VH": 2,
    "CanopyHeight": 2,
}
DEFAULT_PRECISION = 2


def reduce_values(
    values: np.ndarray,
    max_pixels: Optional[float] = None,
    best_effort: bool = True,
) -> BandStatistics:
    """
    Compute mean/min/max/standard deviation over defined pixels.

    Undefined (NaN) pixels are excluded rather than counted as zero; a
    region without defined pixels yields empty statistics.

    Args:
        values: Pixel values inside the region (any shape)
        max_pixels: Pixel budget; None for unlimited
        best_effort: Subsample instead of failing when over budget

    Returns:
        BandStatistics

    Raises:
        ValueError: If the budget is exceeded and best_effort is False
    """
    pixels = np.asarray(values, dtype=np.float64).ravel()
    pixels = pixels[np.isfinite(pixels)]

    if max_pixels is not None and pixels.size > max_pixels:
        if not best_effort:
            raise ValueError(
                f"Too many pixels in region: {pixels.size} > maxPixels {max_pixels:.0f}"
            )
        logger.info(f"Region exceeds pixel budget ({pixels.size}), computing approximate statistics")
        pixels = decimate(pixels, max_pixels)

    if pixels.size == 0:
        return BandStatistics.empty()

    return BandStatistics(
        mean=float(np.mean(pixels)),
        min=float(np.min(pixels)),
        max=float(np.max(pixels)),
        std_dev=float(np.std(pixels)),
        pixel_count=int(pixels.size),
    )


def round_or_none(value: Optional[float], digits: int) -> Optional[float]:
    return None if value is None else round(value, digits)


def round_statistics(stats: BandStatistics, band: str) -> BandStatistics:
    """Round statistics to the presentation precision of a band."""
    digits = METRIC_PRECISION.get(band, DEFAULT_PRECISION)
    return BandStatistics(
        mean=round_or_none(stats.mean, digits),
        min=round_or_none(stats.min, digits),
        max=round_or_none(stats.max, digits),
        std_dev=round_or_none(stats.std_dev, digits),
        pixel_count=stats.pixel_count,
    )


def total_biomass(mean_agb: float, area_ha: float) -> float:
    """Total biomass in tons from mean density (t/ha) and area (ha)."""
    return mean_agb * area_ha
