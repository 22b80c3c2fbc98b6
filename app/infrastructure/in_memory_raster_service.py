"""
Infrastructure layer: in-process RasterService over a scene catalog.

Evaluates every pipeline step eagerly with the numpy domain functions. Used
for offline development (ANALYTICS_BACKEND=memory) and as the remote
platform stand-in in tests.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional
from uuid import uuid4
import logging

import numpy as np

from app.domain.models import (
    BandStatistics,
    DateWindow,
    Geometry,
    LandCoverSource,
    Sensor,
)
from app.domain.raster import GridSpec, Raster
from app.infrastructure.api_constants import CollectionFilters, EarthEngineDatasets
from app.infrastructure.raster_service import normalize_tile_url
from app.services.domain.agb_model import AGBModel
from app.services.domain.band_algebra import (
    VH_BAND,
    VV_BAND,
    add_optical_indices,
    add_radar_indices,
)
from app.services.domain.cloud_masking import (
    LIDAR_HEIGHT_BAND,
    REFLECTANCE_BANDS,
    mask_clouds,
    mask_lidar_quality,
)
from app.services.domain.compositor import mean_composite, median_composite, mode_composite
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND, TARGET_CRS, harmonize
from app.services.domain.land_cover import CLASSIFICATION_BAND
from app.services.domain.statistics import reduce_values
from app.utils.spatial_helpers import (
    grid_for_geometry,
    intersects_geometry,
    pixel_coverage_areas,
    polygon_mask,
    resample_bilinear,
    resample_nearest,
)

logger = logging.getLogger(__name__)

# WorldCover release -> map year it contains
WORLDCOVER_MAP_YEARS = {
    EarthEngineDatasets.WORLDCOVER_V100: 2020,
    EarthEngineDatasets.WORLDCOVER_V200: 2021,
}


@dataclass(frozen=True)
class Scene:
    """One acquisition in the catalog."""
    sensor: Sensor
    acquired: date
    raster: Raster
    properties: dict = field(default_factory=dict)

    @property
    def cloud_cover(self) -> float:
        return float(self.properties.get(CollectionFilters.CLOUD_COVER_PROPERTY, 0.0))


def _align(rasters: list[Raster], grid: GridSpec, categorical: bool = False) -> list[Raster]:
    """Resample rasters that are not on `grid` onto it."""
    resample = resample_nearest if categorical else resample_bilinear
    return [
        raster if raster.grid == grid else Raster(
            {band: resample(raster.band(band), raster.grid, grid) for band in raster.band_names},
            grid,
        )
        for raster in rasters
    ]


class InMemoryRasterService:
    """
    RasterService evaluated locally with numpy.

    Images handed out by this service are `Raster` instances.
    """

    def __init__(
        self,
        scenes: Iterable[Scene] = (),
        scale: int = 10,
        max_pixels: float = 1e13,
        best_effort: bool = True,
        tile_base_url: str = "memory://maps",
    ):
        self.scenes: list[Scene] = list(scenes)
        self.scale = scale
        self.max_pixels = max_pixels
        self.best_effort = best_effort
        self.tile_base_url = tile_base_url.rstrip("/")

    def add_scene(self, scene: Scene) -> None:
        self.scenes.append(scene)

    def _select(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: Optional[DateWindow] = None,
        cloud_cover_max: Optional[float] = None,
    ) -> list[Scene]:
        """Scenes of a sensor overlapping the geometry, oldest first."""
        selected = [
            scene for scene in self.scenes
            if scene.sensor == sensor
            and (window is None or window.contains(scene.acquired))
            and (cloud_cover_max is None or scene.cloud_cover < cloud_cover_max)
            and intersects_geometry(scene.raster.grid, geometry)
        ]
        return sorted(selected, key=lambda scene: scene.acquired)

    def _grid(self, scenes: list[Scene], geometry: Geometry) -> GridSpec:
        """Common grid of the scenes, or a grid around the geometry when they differ."""
        grids = {scene.raster.grid for scene in scenes}
        if len(grids) == 1:
            return grids.pop()
        return grid_for_geometry(geometry, self.scale)

    async def count_scenes(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> int:
        return len(self._select(sensor, geometry, window, cloud_cover_max))

    async def count_lidar_footprints(self, geometry: Geometry, window: DateWindow) -> int:
        footprints = 0
        for scene in self._select(Sensor.GEDI, geometry, window):
            heights = mask_lidar_quality(scene.raster).band(LIDAR_HEIGHT_BAND)
            inside = polygon_mask(geometry, scene.raster.grid)
            footprints += int(np.count_nonzero(np.isfinite(heights) & inside))
        return footprints

    async def composite(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> Raster:
        scenes = self._select(sensor, geometry, window, cloud_cover_max)
        grid = self._grid(scenes, geometry)
        logger.debug(f"Compositing {len(scenes)} {sensor.value} scene(s) for {window}")

        if sensor == Sensor.SENTINEL2:
            masked = _align([mask_clouds(scene.raster) for scene in scenes], grid)
            return add_optical_indices(median_composite(masked, grid, REFLECTANCE_BANDS))

        if sensor == Sensor.SENTINEL1:
            rasters = _align([scene.raster.select([VV_BAND, VH_BAND]) for scene in scenes], grid)
            return add_radar_indices(median_composite(rasters, grid, [VV_BAND, VH_BAND]))

        if sensor == Sensor.GEDI:
            masked = _align([mask_lidar_quality(scene.raster) for scene in scenes], grid)
            composite = mean_composite(masked, grid, [LIDAR_HEIGHT_BAND])
            return composite.rename({LIDAR_HEIGHT_BAND: CANOPY_HEIGHT_BAND})

        raise ValueError(f"No composite defined for sensor {sensor.value}")

    async def harmonize(
        self,
        optical: Raster,
        radar: Raster,
        lidar: Optional[Raster] = None,
    ) -> Raster:
        return harmonize(optical, radar, lidar, crs=TARGET_CRS, scale_m=self.scale)

    async def apply_agb_model(self, image: Raster, model: AGBModel) -> Raster:
        return model.apply(image)

    async def reduce_region(self, image: Raster, band: str, geometry: Geometry) -> BandStatistics:
        inside = polygon_mask(geometry, image.grid)
        return reduce_values(image.band(band)[inside], self.max_pixels, self.best_effort)

    async def tile_url(self, image: Raster, vis_params: dict) -> str:
        return normalize_tile_url(f"{self.tile_base_url}/{uuid4().hex}")

    async def land_cover_image(
        self,
        source: LandCoverSource,
        geometry: Geometry,
        window: Optional[DateWindow] = None,
        year: Optional[int] = None,
    ) -> Raster:
        if source == LandCoverSource.DYNAMIC_WORLD:
            if window is None:
                raise ValueError("Dynamic World classification requires a date window")
            scenes = self._select(Sensor.DYNAMIC_WORLD, geometry, window)
            label = CollectionFilters.DYNAMIC_WORLD_LABEL_BAND
            grid = self._grid(scenes, geometry)
            labels = _align([scene.raster.select([label]) for scene in scenes], grid, categorical=True)
            composite = mode_composite(labels, grid, label)
            return composite.rename({label: CLASSIFICATION_BAND})

        map_year = WORLDCOVER_MAP_YEARS[EarthEngineDatasets.world_cover_for_year(year or 2021)]
        scenes = [
            scene for scene in self._select(Sensor.WORLDCOVER, geometry)
            if scene.acquired.year == map_year
        ]
        if not scenes:
            logger.warning(f"No WorldCover {map_year} map covers the geometry")
            return Raster.empty(grid_for_geometry(geometry, self.scale), [CLASSIFICATION_BAND])

        band = CollectionFilters.WORLDCOVER_MAP_BAND
        return scenes[0].raster.select([band]).rename({band: CLASSIFICATION_BAND})

    async def class_areas(self, image: Raster, geometry: Geometry) -> dict[int, float]:
        labels = image.band(CLASSIFICATION_BAND)
        areas = pixel_coverage_areas(geometry, image.grid)
        classified = np.isfinite(labels) & (areas > 0)

        return {
            int(value): float(areas[classified & (labels == value)].sum())
            for value in np.unique(labels[classified])
        }
