"""
In-memory raster representation.

A Raster is a named set of float64 bands sharing one GridSpec. Masked or
undefined pixels are NaN. Rasters are immutable: band arrays are made
read-only on construction and every operation returns a new Raster.
"""
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np


@dataclass(frozen=True)
class GridSpec:
    """
    North-up pixel grid.

    origin_x/origin_y is the upper-left corner in CRS units; rows run
    southwards, so pixel centers have y = origin_y - (row + 0.5) * pixel_height.
    """
    crs: str
    origin_x: float
    origin_y: float
    pixel_width: float
    pixel_height: float
    width: int
    height: int
    scale_m: float

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) in CRS units."""
        return (
            self.origin_x,
            self.origin_y - self.height * self.pixel_height,
            self.origin_x + self.width * self.pixel_width,
            self.origin_y,
        )

    def pixel_centers(self) -> tuple[np.ndarray, np.ndarray]:
        """Return 2D arrays of pixel-center x and y coordinates."""
        cols = self.origin_x + (np.arange(self.width) + 0.5) * self.pixel_width
        rows = self.origin_y - (np.arange(self.height) + 0.5) * self.pixel_height
        return np.meshgrid(cols, rows)

    def fractional_index(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Map CRS coordinates to fractional (row, col) pixel indices."""
        col = (x - self.origin_x) / self.pixel_width - 0.5
        row = (self.origin_y - y) / self.pixel_height - 0.5
        return row, col


class Raster:
    """Immutable multi-band raster."""

    def __init__(self, bands: Mapping[str, np.ndarray], grid: GridSpec):
        frozen = {}
        for name, values in bands.items():
            array = np.array(values, dtype=np.float64)
            if array.shape != grid.shape:
                raise ValueError(
                    f"Band '{name}' has shape {array.shape}, grid expects {grid.shape}"
                )
            array.flags.writeable = False
            frozen[name] = array
        self._bands = frozen
        self.grid = grid

    @classmethod
    def empty(cls, grid: GridSpec, band_names: Iterable[str]) -> "Raster":
        """Raster where every pixel of every band is undefined."""
        return cls({name: np.full(grid.shape, np.nan) for name in band_names}, grid)

    @property
    def band_names(self) -> list[str]:
        return list(self._bands)

    def has_band(self, name: str) -> bool:
        return name in self._bands

    def band(self, name: str) -> np.ndarray:
        try:
            return self._bands[name]
        except KeyError:
            raise KeyError(
                f"Band '{name}' not found (available: {', '.join(self._bands) or 'none'})"
            ) from None

    def select(self, names: Iterable[str]) -> "Raster":
        return Raster({name: self.band(name) for name in names}, self.grid)

    def add_bands(self, bands: Mapping[str, np.ndarray]) -> "Raster":
        """Return a copy with bands appended (existing names are overwritten)."""
        merged = dict(self._bands)
        merged.update(bands)
        return Raster(merged, self.grid)

    def rename(self, mapping: Mapping[str, str]) -> "Raster":
        return Raster(
            {mapping.get(name, name): values for name, values in self._bands.items()},
            self.grid,
        )

    def __repr__(self) -> str:
        return f"Raster(bands={self.band_names}, shape={self.grid.shape}, crs={self.grid.crs})"
