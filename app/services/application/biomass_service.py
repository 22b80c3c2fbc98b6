"""
Application service: multi-sensor above-ground biomass estimation.
"""
from datetime import date
from typing import Optional
import asyncio
import logging

from app.domain.errors import DataUnavailableError
from app.domain.models import (
    BiomassChangeReport,
    DataQuality,
    DateResult,
    DateWindow,
    Geometry,
    Sensor,
)
from app.infrastructure.api_constants import VisualizationParams
from app.infrastructure.raster_service import RasterService, RemoteServiceError
from app.services.domain.agb_model import AGB_BAND, select_model
from app.services.domain.band_algebra import OPTICAL_INDEX_BANDS, RADAR_BANDS
from app.services.domain.change_analysis import analyze_change
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND
from app.services.domain.statistics import round_statistics, total_biomass
from app.services.domain.window_search import (
    AGB_SEARCH_POLICY,
    SearchPolicy,
    find_data_window,
)
from app.utils.geo_projection import geodesic_area_hectares

logger = logging.getLogger(__name__)

INPUT_METRIC_BANDS = OPTICAL_INDEX_BANDS + RADAR_BANDS

NO_GEDI_WARNING = (
    "No GEDI canopy height data available for this location and time period. "
    "AGB calculated without canopy height component."
)
GEDI_FAILED_WARNING = (
    "GEDI canopy height data unavailable. "
    "AGB calculated without canopy height component."
)


class BiomassService:
    """
    Application service for biomass estimation.

    Orchestrates window search, compositing, harmonization, regression and
    region statistics through the RasterService. No formulas live here.
    """

    def __init__(
        self,
        raster_service: RasterService,
        cloud_cover_max: float = 30.0,
        search_policy: SearchPolicy = AGB_SEARCH_POLICY,
    ):
        """
        Initialize the service with dependencies.

        Args:
            raster_service: Analytics platform client
            cloud_cover_max: Maximum scene cloud percentage for optical imagery
            search_policy: Adaptive window search policy
        """
        self.raster_service = raster_service
        self.cloud_cover_max = cloud_cover_max
        self.search_policy = search_policy

    async def estimate_change(
        self,
        geometry: Geometry,
        start_date: date,
        end_date: date,
    ) -> BiomassChangeReport:
        """
        Estimate biomass at two dates and the change between them.

        Both dates are processed concurrently; a failure for either date
        fails the whole request.

        Raises:
            DataUnavailableError: If no usable imagery is found for a date
            RemoteServiceError: If the analytics platform fails
        """
        area_ha = geodesic_area_hectares(geometry)
        logger.info(
            f"Estimating biomass for {area_ha:.2f} ha at {start_date.isoformat()} "
            f"and {end_date.isoformat()}"
        )

        start, end = await asyncio.gather(
            self.estimate_for_date(geometry, start_date, area_ha),
            self.estimate_for_date(geometry, end_date, area_ha),
        )
        return BiomassChangeReport(
            start=start,
            end=end,
            change=analyze_change(start, end),
            search_weeks=self.search_policy.bound_weeks,
        )

    async def estimate_for_date(
        self,
        geometry: Geometry,
        target: date,
        area_ha: Optional[float] = None,
    ) -> DateResult:
        """
        Estimate biomass around one target date.

        Args:
            geometry: Region of interest
            target: Target date
            area_ha: Precomputed geodesic area of the region

        Returns:
            DateResult with rounded statistics
        """
        if area_ha is None:
            area_ha = geodesic_area_hectares(geometry)

        async def has_optical_data(window: DateWindow) -> bool:
            count = await self.raster_service.count_scenes(
                Sensor.SENTINEL2, geometry, window, self.cloud_cover_max
            )
            return count > 0

        match = await find_data_window(target, self.search_policy, has_optical_data)
        window = match.window
        warnings: list[str] = []

        s2_count, s1_count, footprints = await asyncio.gather(
            self.raster_service.count_scenes(Sensor.SENTINEL2, geometry, window, self.cloud_cover_max),
            self.raster_service.count_scenes(Sensor.SENTINEL1, geometry, window),
            self._count_lidar_footprints(geometry, window, warnings),
        )
        logger.info(
            f"{target.isoformat()}: window {window}, {s2_count} Sentinel-2, "
            f"{s1_count} Sentinel-1 scenes, {footprints} GEDI footprints"
        )

        if s1_count == 0:
            raise DataUnavailableError(
                f"No Sentinel-1 radar imagery found for {target.isoformat()} in {window}",
                target_date=target,
                bound_weeks=match.weeks,
            )

        model = select_model(footprints)
        composites = [
            self.raster_service.composite(Sensor.SENTINEL2, geometry, window, self.cloud_cover_max),
            self.raster_service.composite(Sensor.SENTINEL1, geometry, window),
        ]
        if model.uses_canopy_height:
            composites.append(self.raster_service.composite(Sensor.GEDI, geometry, window))
        optical, radar, *lidar = await asyncio.gather(*composites)

        harmonized = await self.raster_service.harmonize(optical, radar, lidar[0] if lidar else None)
        agb_image = await self.raster_service.apply_agb_model(harmonized, model)

        bands = list(INPUT_METRIC_BANDS)
        if model.uses_canopy_height:
            bands.append(CANOPY_HEIGHT_BAND)

        agb_stats, tile_url, *band_stats = await asyncio.gather(
            self.raster_service.reduce_region(agb_image, AGB_BAND, geometry),
            self.raster_service.tile_url(agb_image, VisualizationParams.AGB),
            *[self.raster_service.reduce_region(harmonized, band, geometry) for band in bands],
        )

        if agb_stats.is_empty:
            raise DataUnavailableError(
                f"No valid biomass pixels for {target.isoformat()} in {window}",
                target_date=target,
                bound_weeks=match.weeks,
            )

        input_metrics = {
            band: round_statistics(stats, band) for band, stats in zip(bands, band_stats)
        }
        input_metrics.setdefault(CANOPY_HEIGHT_BAND, None)

        return DateResult(
            target_date=target,
            window=window,
            months_used=match.months_used,
            agb=round_statistics(agb_stats, AGB_BAND),
            total_biomass=round(total_biomass(agb_stats.mean, area_ha), 2),
            area_ha=round(area_ha, 2),
            agb_tile_url=tile_url,
            model_variant=model.variant.value,
            input_metrics=input_metrics,
            data_quality=DataQuality(
                sentinel2_images=s2_count,
                sentinel1_images=s1_count,
                gedi_footprints=footprints,
                temporal_range=str(window),
            ),
            warnings=tuple(warnings),
        )

    async def _count_lidar_footprints(
        self,
        geometry: Geometry,
        window: DateWindow,
        warnings: list[str],
    ) -> int:
        """Lidar footprint count; a lidar failure degrades to zero with a warning."""
        try:
            footprints = await self.raster_service.count_lidar_footprints(geometry, window)
        except RemoteServiceError as e:
            logger.warning(f"GEDI lookup failed for {window}: {e.message}")
            warnings.append(GEDI_FAILED_WARNING)
            return 0

        if footprints == 0:
            logger.warning(f"No GEDI footprints for {window}")
            warnings.append(NO_GEDI_WARNING)
        return footprints
