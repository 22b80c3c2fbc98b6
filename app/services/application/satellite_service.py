"""
Application service: multi-sensor statistics over a fixed date range.
"""
from datetime import date
import asyncio
import logging

from app.domain.errors import ValidationError
from app.domain.models import DateWindow, Geometry, Sensor, SensorStatisticsReport
from app.infrastructure.raster_service import RasterService, RemoteServiceError
from app.services.domain.band_algebra import OPTICAL_INDEX_BANDS, RADAR_BANDS
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND
from app.services.domain.statistics import round_statistics

logger = logging.getLogger(__name__)


class SatelliteService:
    """
    Application service for the multi-sensor statistics view.

    Unlike biomass estimation there is no window search: the requested
    range is used as-is and missing sensors only produce warnings.
    """

    def __init__(self, raster_service: RasterService):
        self.raster_service = raster_service

    async def get_statistics(
        self,
        geometry: Geometry,
        start_date: date,
        end_date: date,
        cloud_cover_max: float = 20.0,
    ) -> SensorStatisticsReport:
        """
        Compute per-band mean/min/max for the optical, radar and lidar stack.

        Args:
            geometry: Region of interest
            start_date: First day of the range
            end_date: Day after the last day of the range
            cloud_cover_max: Maximum scene cloud percentage for optical imagery

        Returns:
            SensorStatisticsReport

        Raises:
            ValidationError: If the range is empty
        """
        if end_date <= start_date:
            raise ValidationError("endDate must be after startDate")

        window = DateWindow(start=start_date, end=end_date)
        s2_count, s1_count, gedi_available = await asyncio.gather(
            self.raster_service.count_scenes(Sensor.SENTINEL2, geometry, window, cloud_cover_max),
            self.raster_service.count_scenes(Sensor.SENTINEL1, geometry, window),
            self._gedi_available(geometry, window),
        )

        composites = [
            self.raster_service.composite(Sensor.SENTINEL2, geometry, window, cloud_cover_max),
            self.raster_service.composite(Sensor.SENTINEL1, geometry, window),
        ]
        if gedi_available:
            composites.append(self.raster_service.composite(Sensor.GEDI, geometry, window))
        optical, radar, *lidar = await asyncio.gather(*composites)

        stack = await self.raster_service.harmonize(optical, radar, lidar[0] if lidar else None)

        bands = list(OPTICAL_INDEX_BANDS + RADAR_BANDS)
        if gedi_available:
            bands.append(CANOPY_HEIGHT_BAND)
        results = await asyncio.gather(
            *[self.raster_service.reduce_region(stack, band, geometry) for band in bands]
        )

        warnings = []
        if not gedi_available:
            warnings.append("GEDI canopy height data not available for this region/time period")
        if s2_count == 0:
            warnings.append("No Sentinel-2 imagery found in date range")
        if s1_count == 0:
            warnings.append("No Sentinel-1 imagery found in date range")

        logger.info(
            f"Multi-sensor statistics for {window}: {s2_count} Sentinel-2, "
            f"{s1_count} Sentinel-1 scenes, GEDI {'available' if gedi_available else 'missing'}"
        )
        return SensorStatisticsReport(
            window=window,
            statistics={band: round_statistics(stats, band) for band, stats in zip(bands, results)},
            sentinel2_images=s2_count,
            sentinel1_images=s1_count,
            gedi_available=gedi_available,
            warnings=tuple(warnings),
        )

    async def _gedi_available(self, geometry: Geometry, window: DateWindow) -> bool:
        try:
            return await self.raster_service.count_scenes(Sensor.GEDI, geometry, window) > 0
        except RemoteServiceError as e:
            logger.warning(f"GEDI lookup failed for {window}: {e.message}")
            return False
