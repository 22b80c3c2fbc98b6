"""
Infrastructure layer: Google Earth Engine implementation of RasterService.

Images are built as lazy Earth Engine expression graphs; only counts,
region reductions and map IDs are evaluated remotely. Every evaluation is a
blocking HTTP round trip, so it runs in a worker thread and is bounded by
the configured timeout. Failures are never retried.
"""
from typing import Callable, Optional, TypeVar
import asyncio
import logging

import ee

from app.config import Settings
from app.domain.errors import ConfigurationError
from app.domain.models import (
    BandStatistics,
    DateWindow,
    Geometry,
    LandCoverSource,
    Sensor,
)
from app.infrastructure.api_constants import CollectionFilters, EarthEngineDatasets
from app.infrastructure.raster_service import (
    RemoteServiceError,
    normalize_tile_url,
    with_timeout,
)
from app.services.domain.agb_model import AGB_BAND, AGB_RANGE, AGBModel
from app.services.domain.band_algebra import (
    BLUE_BAND,
    EVI_EXPRESSION,
    LAI_OFFSET,
    LAI_RANGE,
    LAI_SLOPE,
    NDVI_EXPRESSION,
    NIR_BAND,
    OPTICAL_INDEX_BANDS,
    RADAR_BANDS,
    RED_BAND,
    RVI_EXPRESSION,
    VH_BAND,
    VV_BAND,
)
from app.services.domain.cloud_masking import (
    CIRRUS_BIT_MASK,
    CLOUD_BIT_MASK,
    LIDAR_DEGRADE_BAND,
    LIDAR_HEIGHT_BAND,
    LIDAR_QUALITY_BAND,
    QA_BAND,
    REFLECTANCE_BANDS,
    REFLECTANCE_SCALE,
)
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND, TARGET_CRS
from app.services.domain.land_cover import CLASSIFICATION_BAND

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Environment variable names reported when credentials are missing
CREDENTIAL_VARIABLES = {
    "gee_service_account_email": "GEE_SERVICE_ACCOUNT_EMAIL",
    "gee_private_key": "GEE_PRIVATE_KEY",
    "gee_project_id": "GEE_PROJECT_ID",
}


def _mask_s2_clouds(image: ee.Image) -> ee.Image:
    """Mask QA60 cloud and cirrus pixels and scale to reflectance."""
    qa = image.select(QA_BAND)
    mask = (
        qa.bitwiseAnd(CLOUD_BIT_MASK).eq(0)
        .And(qa.bitwiseAnd(CIRRUS_BIT_MASK).eq(0))
    )
    return (
        image.updateMask(mask)
        .divide(REFLECTANCE_SCALE)
        .select(list(REFLECTANCE_BANDS))
        .copyProperties(image, ["system:time_start"])
    )


def _mask_gedi_quality(image: ee.Image) -> ee.Image:
    """Keep rh98 only for good-quality, non-degraded shots."""
    keep = image.select(LIDAR_QUALITY_BAND).eq(1).And(image.select(LIDAR_DEGRADE_BAND).eq(0))
    return image.select(LIDAR_HEIGHT_BAND).updateMask(keep)


def _or_masked(collection: ee.ImageCollection, bands: list[str]) -> ee.ImageCollection:
    """
    The collection itself, or one fully masked image with `bands` when it is empty.

    Reducing an empty collection yields an image without bands; the masked
    placeholder keeps the band names so the composite has zero contributing
    pixels instead.
    """
    placeholder = ee.Image.constant([0] * len(bands)).toFloat().rename(bands).updateMask(0)
    return ee.ImageCollection(
        ee.Algorithms.If(collection.size().gt(0), collection, ee.ImageCollection([placeholder]))
    )


def parse_region_statistics(result: Optional[dict], band: str) -> BandStatistics:
    """Read a combined mean/minMax/stdDev/count reduction of one band."""
    result = result or {}
    count = int(result.get(f"{band}_count") or 0)
    if count == 0 or result.get(f"{band}_mean") is None:
        return BandStatistics.empty()

    return BandStatistics(
        mean=result[f"{band}_mean"],
        min=result.get(f"{band}_min"),
        max=result.get(f"{band}_max"),
        std_dev=result.get(f"{band}_stdDev"),
        pixel_count=count,
    )


def parse_class_areas(result: Optional[dict]) -> dict[int, float]:
    """Read a grouped pixel-area sum into square meters per class value."""
    return {int(group["class"]): float(group["sum"]) for group in (result or {}).get("groups", [])}


def tile_url_from_map_id(map_id: dict) -> str:
    return normalize_tile_url(map_id["tile_fetcher"].url_format)


class EarthEngineRasterService:
    """
    RasterService backed by the Earth Engine Python client.

    Instances are created by `connect`, which initializes the process-wide
    Earth Engine session.
    """

    def __init__(
        self,
        scale: int = 10,
        max_pixels: float = 1e13,
        best_effort: bool = True,
        timeout: Optional[float] = 120.0,
    ):
        self.scale = scale
        self.max_pixels = max_pixels
        self.best_effort = best_effort
        self.timeout = timeout

    @classmethod
    async def connect(cls, settings: Settings) -> "EarthEngineRasterService":
        """
        Initialize the Earth Engine session with service-account credentials.

        Args:
            settings: Application settings holding the credentials

        Returns:
            A ready EarthEngineRasterService

        Raises:
            ConfigurationError: If credentials are missing or rejected
        """
        missing = [
            variable
            for field_name, variable in CREDENTIAL_VARIABLES.items()
            if not getattr(settings, field_name)
        ]
        if missing:
            raise ConfigurationError(
                f"GEE credentials not configured (missing: {', '.join(missing)})"
            )

        # Keys stored in a single-line env var carry escaped newlines
        private_key = settings.gee_private_key.replace("\\n", "\n")

        def initialize() -> None:
            credentials = ee.ServiceAccountCredentials(
                settings.gee_service_account_email,
                key_data=private_key,
            )
            ee.Initialize(credentials, project=settings.gee_project_id)

        logger.info(
            f"Initializing Earth Engine for project {settings.gee_project_id} "
            f"as {settings.gee_service_account_email}"
        )
        try:
            await with_timeout(
                asyncio.to_thread(initialize),
                settings.remote_call_timeout,
                "Earth Engine initialization",
            )
        except ee.EEException as e:
            raise ConfigurationError(f"Earth Engine initialization failed: {e}") from e
        except ValueError as e:
            raise ConfigurationError(f"Invalid GEE private key: {e}") from e

        logger.info("Earth Engine initialized")
        return cls(
            scale=settings.analysis_scale,
            max_pixels=settings.max_pixels,
            best_effort=settings.best_effort,
            timeout=settings.remote_call_timeout,
        )

    async def _evaluate(self, call: Callable[[], T], operation: str) -> T:
        """Run a blocking evaluation in a worker thread."""
        logger.debug(f"Evaluating {operation}")
        try:
            return await with_timeout(asyncio.to_thread(call), self.timeout, operation)
        except ee.EEException as e:
            logger.error(f"Earth Engine error during {operation}: {e}")
            raise RemoteServiceError(f"Earth Engine error: {e}", operation=operation) from e

    @staticmethod
    def _region(geometry: Geometry) -> ee.Geometry:
        return ee.Geometry.Polygon([list(map(list, ring)) for ring in geometry.coordinates])

    def _collection(
        self,
        sensor: Sensor,
        region: ee.Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> ee.ImageCollection:
        start, end = window.start.isoformat(), window.end.isoformat()

        if sensor == Sensor.SENTINEL2:
            collection = (
                ee.ImageCollection(EarthEngineDatasets.SENTINEL2)
                .filterBounds(region)
                .filterDate(start, end)
            )
            if cloud_cover_max is not None:
                collection = collection.filter(
                    ee.Filter.lt(CollectionFilters.CLOUD_COVER_PROPERTY, cloud_cover_max)
                )
            return collection

        if sensor == Sensor.SENTINEL1:
            return (
                ee.ImageCollection(EarthEngineDatasets.SENTINEL1)
                .filterBounds(region)
                .filterDate(start, end)
                .filter(ee.Filter.listContains(CollectionFilters.POLARISATION_PROPERTY, VV_BAND))
                .filter(ee.Filter.listContains(CollectionFilters.POLARISATION_PROPERTY, VH_BAND))
                .filter(ee.Filter.eq(CollectionFilters.INSTRUMENT_MODE_PROPERTY, CollectionFilters.INSTRUMENT_MODE))
                .filter(ee.Filter.eq(CollectionFilters.ORBIT_PASS_PROPERTY, CollectionFilters.ORBIT_PASS))
                .select([VV_BAND, VH_BAND])
            )

        if sensor == Sensor.GEDI:
            return (
                ee.ImageCollection(EarthEngineDatasets.GEDI)
                .filterBounds(region)
                .filterDate(start, end)
            )

        if sensor == Sensor.DYNAMIC_WORLD:
            return (
                ee.ImageCollection(EarthEngineDatasets.DYNAMIC_WORLD)
                .filterBounds(region)
                .filterDate(start, end)
                .select(CollectionFilters.DYNAMIC_WORLD_LABEL_BAND)
            )

        raise ValueError(f"Sensor {sensor.value} has no dated collection")

    async def count_scenes(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> int:
        collection = self._collection(sensor, self._region(geometry), window, cloud_cover_max)
        size = await self._evaluate(collection.size().getInfo, f"{sensor.value} scene count")
        return int(size or 0)

    async def count_lidar_footprints(self, geometry: Geometry, window: DateWindow) -> int:
        region = self._region(geometry)
        collection = self._collection(Sensor.GEDI, region, window)

        size = await self._evaluate(collection.size().getInfo, "gedi scene count")
        if not size:
            return 0

        heights = collection.map(_mask_gedi_quality).mean()
        counts = heights.reduceRegion(
            reducer=ee.Reducer.count(),
            geometry=region,
            scale=self.scale,
            maxPixels=self.max_pixels,
            bestEffort=self.best_effort,
        )
        result = await self._evaluate(counts.getInfo, "gedi footprint count")
        return int((result or {}).get(LIDAR_HEIGHT_BAND) or 0)

    async def composite(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> ee.Image:
        collection = self._collection(sensor, self._region(geometry), window, cloud_cover_max)

        if sensor == Sensor.SENTINEL2:
            composite = _or_masked(collection.map(_mask_s2_clouds), list(REFLECTANCE_BANDS)).median()
            bands = {
                "NIR": composite.select(NIR_BAND),
                "RED": composite.select(RED_BAND),
                "BLUE": composite.select(BLUE_BAND),
            }
            ndvi = composite.expression(NDVI_EXPRESSION, bands).rename("NDVI")
            evi = composite.expression(EVI_EXPRESSION, bands).rename("EVI")
            lai = evi.multiply(LAI_SLOPE).add(LAI_OFFSET).clamp(*LAI_RANGE).rename("LAI")
            return composite.addBands(ndvi).addBands(evi).addBands(lai)

        if sensor == Sensor.SENTINEL1:
            composite = _or_masked(collection, [VV_BAND, VH_BAND]).median()
            rvi = composite.expression(
                RVI_EXPRESSION,
                {"VV": composite.select(VV_BAND), "VH": composite.select(VH_BAND)},
            ).rename("RVI")
            return composite.addBands(rvi)

        if sensor == Sensor.GEDI:
            lidar = _or_masked(collection.map(_mask_gedi_quality), [LIDAR_HEIGHT_BAND])
            return lidar.mean().rename(CANOPY_HEIGHT_BAND)

        raise ValueError(f"No composite defined for sensor {sensor.value}")

    async def harmonize(
        self,
        optical: ee.Image,
        radar: ee.Image,
        lidar: Optional[ee.Image] = None,
    ) -> ee.Image:
        projection = {"crs": TARGET_CRS, "scale": self.scale}
        image = optical.select(list(OPTICAL_INDEX_BANDS)).addBands(
            radar.select(list(RADAR_BANDS)).resample("bilinear").reproject(**projection)
        )
        if lidar is not None:
            image = image.addBands(
                lidar.select(CANOPY_HEIGHT_BAND).resample("bilinear").reproject(**projection)
            )
        return image

    async def apply_agb_model(self, image: ee.Image, model: AGBModel) -> ee.Image:
        variables = {band: image.select(band) for band in model.bands}
        return image.expression(model.expression(), variables).clamp(*AGB_RANGE).rename(AGB_BAND)

    async def reduce_region(self, image: ee.Image, band: str, geometry: Geometry) -> BandStatistics:
        reducer = (
            ee.Reducer.mean()
            .combine(ee.Reducer.minMax(), sharedInputs=True)
            .combine(ee.Reducer.stdDev(), sharedInputs=True)
            .combine(ee.Reducer.count(), sharedInputs=True)
        )
        stats = image.select(band).reduceRegion(
            reducer=reducer,
            geometry=self._region(geometry),
            scale=self.scale,
            maxPixels=self.max_pixels,
            bestEffort=self.best_effort,
        )
        result = await self._evaluate(stats.getInfo, f"{band} statistics")
        return parse_region_statistics(result, band)

    async def tile_url(self, image: ee.Image, vis_params: dict) -> str:
        map_id = await self._evaluate(lambda: image.getMapId(vis_params), "map tiles")
        return tile_url_from_map_id(map_id)

    async def land_cover_image(
        self,
        source: LandCoverSource,
        geometry: Geometry,
        window: Optional[DateWindow] = None,
        year: Optional[int] = None,
    ) -> ee.Image:
        region = self._region(geometry)

        if source == LandCoverSource.DYNAMIC_WORLD:
            if window is None:
                raise ValueError("Dynamic World classification requires a date window")
            collection = self._collection(Sensor.DYNAMIC_WORLD, region, window)
            labels = _or_masked(collection, [CollectionFilters.DYNAMIC_WORLD_LABEL_BAND])
            return labels.mode().rename(CLASSIFICATION_BAND).clip(region)

        dataset = EarthEngineDatasets.world_cover_for_year(year or 2021)
        return (
            ee.ImageCollection(dataset).first()
            .select(CollectionFilters.WORLDCOVER_MAP_BAND)
            .rename(CLASSIFICATION_BAND)
            .clip(region)
        )

    async def class_areas(self, image: ee.Image, geometry: Geometry) -> dict[int, float]:
        areas = ee.Image.pixelArea().addBands(image.select(CLASSIFICATION_BAND)).reduceRegion(
            reducer=ee.Reducer.sum().group(groupField=1, groupName="class"),
            geometry=self._region(geometry),
            scale=self.scale,
            maxPixels=self.max_pixels,
            bestEffort=self.best_effort,
        )
        result = await self._evaluate(areas.getInfo, "class areas")
        return parse_class_areas(result)
