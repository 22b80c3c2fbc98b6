"""
Application service: land-cover classification and class area statistics.
"""
from datetime import date
from typing import Optional
import logging

from app.domain.errors import DataUnavailableError
from app.domain.models import (
    ClassificationInfo,
    DateWindow,
    Geometry,
    LandCoverReport,
    LandCoverSource,
    Sensor,
)
from app.infrastructure.raster_service import RasterService
from app.services.domain.land_cover import (
    DYNAMIC_WORLD_CLASSES,
    DYNAMIC_WORLD_VIS_PARAMS,
    WORLDCOVER_CLASSES,
    WORLDCOVER_VIS_PARAMS,
    summarize_class_areas,
)
from app.services.domain.window_search import (
    LAND_COVER_SEARCH_POLICY,
    SearchPolicy,
    find_data_window,
)

logger = logging.getLogger(__name__)

DEFAULT_WORLDCOVER_YEAR = 2021

DYNAMIC_WORLD_CONFIDENCE = {
    "message": "Dynamic World uses AI to provide pixel-level confidence scores",
    "method": "Temporal ensemble of deep learning predictions",
}


def _plural_months(months: int) -> str:
    return f"{months} month{'s' if months > 1 else ''}"


class ClassificationService:
    """
    Application service for land-cover classification.

    Uses the near real-time Dynamic World classifier when a date range is
    given, otherwise the annual ESA WorldCover map.
    """

    def __init__(
        self,
        raster_service: RasterService,
        search_policy: SearchPolicy = LAND_COVER_SEARCH_POLICY,
    ):
        self.raster_service = raster_service
        self.search_policy = search_policy

    async def classify(
        self,
        geometry: Geometry,
        year: int = DEFAULT_WORLDCOVER_YEAR,
        use_dynamic_world: bool = True,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> LandCoverReport:
        """
        Classify a region and summarize the area of each class.

        Args:
            geometry: Region of interest
            year: WorldCover map year (used when Dynamic World is not)
            use_dynamic_world: Prefer the Dynamic World classifier
            start_date: Start of the requested range (Dynamic World only)
            end_date: Classification date (Dynamic World only)

        Returns:
            LandCoverReport with areas sorted largest first

        Raises:
            DataUnavailableError: If Dynamic World has no imagery within the lookback
        """
        if use_dynamic_world and start_date and end_date:
            image, info = await self._dynamic_world(geometry, end_date)
            vis_params = DYNAMIC_WORLD_VIS_PARAMS
            confidence = DYNAMIC_WORLD_CONFIDENCE
            ai_powered = True
        else:
            logger.info(f"Using ESA WorldCover {year}")
            image = await self.raster_service.land_cover_image(
                LandCoverSource.WORLDCOVER, geometry, year=year
            )
            info = ClassificationInfo(
                source="ESA WorldCover",
                model="Random Forest + Deep Learning",
                description="Global land cover map generated using AI on Sentinel-1 & Sentinel-2",
                classes=WORLDCOVER_CLASSES,
                year=year,
            )
            vis_params = WORLDCOVER_VIS_PARAMS
            confidence = None
            ai_powered = False

        areas = await self.raster_service.class_areas(image, geometry)
        image_url = await self.raster_service.tile_url(image, vis_params)

        return LandCoverReport(
            classification=info,
            area_statistics=summarize_class_areas(areas, info.classes),
            image_url=image_url,
            ai_powered=ai_powered,
            confidence=confidence,
        )

    async def _dynamic_world(self, geometry: Geometry, end_date: date):
        async def has_labels(window: DateWindow) -> bool:
            count = await self.raster_service.count_scenes(Sensor.DYNAMIC_WORLD, geometry, window)
            return count > 0

        try:
            match = await find_data_window(end_date, self.search_policy, has_labels)
        except DataUnavailableError as e:
            raise DataUnavailableError(
                "No Dynamic World data available for this region in the past "
                f"{self.search_policy.bound_weeks} weeks. Try a different location or date range.",
                target_date=e.target_date,
                bound_weeks=e.bound_weeks,
            ) from e

        months = match.months_used
        logger.info(f"Using Dynamic World with {_plural_months(months)} of history ({match.window})")

        image = await self.raster_service.land_cover_image(
            LandCoverSource.DYNAMIC_WORLD, geometry, window=match.window
        )
        info = ClassificationInfo(
            source="Dynamic World AI Classifier",
            model="Deep Learning CNN (Convolutional Neural Network)",
            description=(
                "AI-powered near real-time land classification using neural networks "
                "trained on millions of Sentinel-2 images"
            ),
            classes=DYNAMIC_WORLD_CLASSES,
            classification_date=end_date,
            temporal_window=_plural_months(months),
            date_range=DateWindow(start=match.window.start, end=end_date),
            features=(
                "Current/Present land classification",
                f"Recent {months}-month temporal analysis",
                "Pixel-level confidence scores",
                "Global coverage at 10m resolution",
            ),
        )
        return image, info
