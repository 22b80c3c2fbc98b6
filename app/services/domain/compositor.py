"""
Domain service: temporal compositing of scene stacks.

All composites are per-pixel reductions over scenes sharing one grid.
An empty stack produces a composite whose pixels are all undefined.
"""
from typing import Sequence
import warnings

import numpy as np

from app.domain.raster import GridSpec, Raster


def _stack(scenes: Sequence[Raster], band: str, grid: GridSpec) -> np.ndarray:
    for scene in scenes:
        if scene.grid != grid:
            raise ValueError(
                f"Cannot composite scenes on different grids ({scene.grid} vs {grid})"
            )
    return np.stack([scene.band(band) for scene in scenes])


def _reduce(
    scenes: Sequence[Raster],
    grid: GridSpec,
    bands: Sequence[str],
    reducer,
) -> Raster:
    if not scenes:
        return Raster.empty(grid, bands)

    composite = {}
    with warnings.catch_warnings():
        # All-NaN pixel stacks are expected and reduce to NaN
        warnings.simplefilter("ignore", category=RuntimeWarning)
        for band in bands:
            composite[band] = reducer(_stack(scenes, band, grid), axis=0)
    return Raster(composite, grid)


def median_composite(
    scenes: Sequence[Raster],
    grid: GridSpec,
    bands: Sequence[str],
) -> Raster:
    """
    Per-pixel median of a scene stack, ignoring masked pixels.

    Args:
        scenes: Scenes to reduce (all on `grid`)
        grid: Grid of the output (used as-is when `scenes` is empty)
        bands: Bands to composite

    Returns:
        Composite raster with the requested bands
    """
    return _reduce(scenes, grid, bands, np.nanmedian)


def mean_composite(
    scenes: Sequence[Raster],
    grid: GridSpec,
    bands: Sequence[str],
) -> Raster:
    """Per-pixel mean of a scene stack, ignoring masked pixels."""
    return _reduce(scenes, grid, bands, np.nanmean)


def mode_composite(
    scenes: Sequence[Raster],
    grid: GridSpec,
    band: str,
) -> Raster:
    """
    Per-pixel most frequent class label.

    Ties resolve to the lowest label. Pixels never observed stay NaN.
    """
    if not scenes:
        return Raster.empty(grid, [band])

    stack = _stack(scenes, band, grid)
    observed = np.isfinite(stack)
    labels = np.unique(stack[observed]).astype(np.int64)

    if labels.size == 0:
        return Raster.empty(grid, [band])

    counts = np.stack([np.sum(observed & (stack == label), axis=0) for label in labels])
    mode = labels[np.argmax(counts, axis=0)].astype(np.float64)
    mode[~observed.any(axis=0)] = np.nan
    return Raster({band: mode}, grid)
