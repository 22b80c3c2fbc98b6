"""
Domain service: vegetation and radar indices.

Each index exists twice in the same form: as an expression string (used to
build server-side expressions on the remote platform) and as a numpy
function over band arrays (used by the in-memory backend). Pixels where an
index is undefined (zero denominators, masked inputs) are NaN.
"""
import numpy as np

from app.domain.raster import Raster

# Sentinel-2 band roles
NIR_BAND = "B8"
RED_BAND = "B4"
BLUE_BAND = "B2"

# Sentinel-1 polarisations
VV_BAND = "VV"
VH_BAND = "VH"

OPTICAL_INDEX_BANDS = ("NDVI", "EVI", "LAI")
RADAR_BANDS = ("VV", "VH", "RVI")

NDVI_EXPRESSION = "(NIR - RED) / (NIR + RED)"
EVI_EXPRESSION = "2.5 * ((NIR - RED) / (NIR + 6 * RED - 7.5 * BLUE + 1))"
RVI_EXPRESSION = "4 * VH / (VV + VH)"

# LAI = 3.618 * EVI - 0.118 (empirical proxy, Campos-Taberner et al. 2016)
LAI_SLOPE = 3.618
LAI_OFFSET = -0.118
LAI_RANGE = (0.0, 8.0)


def _divide(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        result = np.divide(numerator, denominator)
    return np.where(np.isfinite(result), result, np.nan)


def ndvi(nir: np.ndarray, red: np.ndarray) -> np.ndarray:
    """Normalized Difference Vegetation Index."""
    return _divide(nir - red, nir + red)


def evi(nir: np.ndarray, red: np.ndarray, blue: np.ndarray) -> np.ndarray:
    """Enhanced Vegetation Index."""
    return 2.5 * _divide(nir - red, nir + 6 * red - 7.5 * blue + 1)


def lai(evi_values: np.ndarray) -> np.ndarray:
    """Leaf Area Index proxy derived linearly from EVI, clamped to [0, 8]."""
    low, high = LAI_RANGE
    # np.clip keeps NaN as NaN
    return np.clip(LAI_SLOPE * evi_values + LAI_OFFSET, low, high)


def rvi(vv: np.ndarray, vh: np.ndarray) -> np.ndarray:
    """Radar Vegetation Index from cross-polarisation backscatter."""
    return _divide(4 * vh, vv + vh)


def add_optical_indices(image: Raster) -> Raster:
    """
    Append NDVI, EVI and LAI to a reflectance image.

    Args:
        image: Raster with B2, B4 and B8 reflectance bands

    Returns:
        Raster with the derived bands appended
    """
    nir = image.band(NIR_BAND)
    red = image.band(RED_BAND)
    blue = image.band(BLUE_BAND)

    evi_values = evi(nir, red, blue)
    return image.add_bands({
        "NDVI": ndvi(nir, red),
        "EVI": evi_values,
        "LAI": lai(evi_values),
    })


def add_radar_indices(image: Raster) -> Raster:
    """Append RVI to a VV/VH backscatter image."""
    return image.add_bands({
        "RVI": rvi(image.band(VV_BAND), image.band(VH_BAND)),
    })
