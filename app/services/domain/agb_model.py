"""
Domain service: Above-Ground Biomass (AGB) regression.

Two fixed linear models share one set of published coefficients:

    FULL:    AGB = a + b1*NDVI + b2*EVI + b3*VH + b4*RVI + b5*CanopyHeight
    REDUCED: AGB = a + b1*NDVI + b2*EVI + b3*VH + b4*RVI

Coefficients are calibrated for tropical forests (Santoro et al. 2015,
Cartus et al. 2014) and do not transfer to other biomes without
recalibration. Output is clamped to [0, 500] t/ha.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Mapping
import logging

import numpy as np

from app.domain.raster import Raster

logger = logging.getLogger(__name__)

AGB_BAND = "AGB"
AGB_RANGE = (0.0, 500.0)
AGB_UNIT = "t/ha"
AGB_REFERENCE = "Calibrated from Santoro et al. (2015), Cartus et al. (2014) for tropical forests"


@dataclass(frozen=True)
class RegressionCoefficients:
    """Published regression coefficients (t/ha per unit of each predictor)."""
    intercept: float = -150.0
    ndvi: float = 200.0
    evi: float = 150.0
    vh: float = -20.0
    rvi: float = 50.0
    canopy_height: float = 15.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


COEFFICIENTS = RegressionCoefficients()


class ModelVariant(str, Enum):
    FULL = "full"
    REDUCED = "reduced"


@dataclass(frozen=True)
class AGBModel:
    """
    One regression variant: an intercept plus (band, coefficient) terms.
    """
    variant: ModelVariant
    intercept: float
    terms: tuple[tuple[str, float], ...]

    @property
    def bands(self) -> list[str]:
        return [band for band, _ in self.terms]

    @property
    def uses_canopy_height(self) -> bool:
        return "CanopyHeight" in self.bands

    @property
    def equation(self) -> str:
        """Human-readable form of the model."""
        parts = " + ".join(f"b{i}({band})" for i, (band, _) in enumerate(self.terms, start=1))
        return f"AGB = a + {parts}"

    def expression(self) -> str:
        """
        Band-math expression with the coefficients inlined.

        Band names are used as expression variables.
        """
        parts = [repr(self.intercept)]
        parts.extend(f"({coefficient!r} * {band})" for band, coefficient in self.terms)
        return " + ".join(parts)

    def evaluate(self, bands: Mapping[str, np.ndarray]) -> np.ndarray:
        """
        Apply the model to band arrays (or scalars) and clamp the result.

        NaN predictors give NaN biomass.
        """
        missing = [band for band in self.bands if band not in bands]
        if missing:
            raise ValueError(
                f"{self.variant.value} AGB model requires bands: {', '.join(missing)}"
            )

        agb = np.full(np.shape(bands[self.bands[0]]), self.intercept, dtype=np.float64)
        for band, coefficient in self.terms:
            agb = agb + coefficient * np.asarray(bands[band], dtype=np.float64)

        low, high = AGB_RANGE
        return np.clip(agb, low, high)

    def apply(self, image: Raster) -> Raster:
        """Compute the single-band AGB layer from a harmonized image."""
        values = self.evaluate({band: image.band(band) for band in self.bands if image.has_band(band)})
        return Raster({AGB_BAND: values}, image.grid)


_REDUCED_TERMS = (
    ("NDVI", COEFFICIENTS.ndvi),
    ("EVI", COEFFICIENTS.evi),
    ("VH", COEFFICIENTS.vh),
    ("RVI", COEFFICIENTS.rvi),
)

FULL_MODEL = AGBModel(
    variant=ModelVariant.FULL,
    intercept=COEFFICIENTS.intercept,
    terms=_REDUCED_TERMS + (("CanopyHeight", COEFFICIENTS.canopy_height),),
)

REDUCED_MODEL = AGBModel(
    variant=ModelVariant.REDUCED,
    intercept=COEFFICIENTS.intercept,
    terms=_REDUCED_TERMS,
)


def select_model(lidar_footprints: int) -> AGBModel:
    """
    Pick the regression variant for a date window.

    Args:
        lidar_footprints: Number of usable lidar samples in the window

    Returns:
        FULL_MODEL with lidar coverage, REDUCED_MODEL otherwise
    """
    model = FULL_MODEL if lidar_footprints > 0 else REDUCED_MODEL
    logger.info(f"Using {model.variant.value} AGB model ({lidar_footprints} lidar footprints)")
    return model
