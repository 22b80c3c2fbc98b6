"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends

from app.config import settings
from app.infrastructure.client_provider import (
    AnalyticsClientProvider,
    DeferredRasterService,
    get_analytics_provider,
)
from app.infrastructure.raster_service import RasterService
from app.services.application.biomass_service import BiomassService
from app.services.application.classification_service import ClassificationService
from app.services.application.satellite_service import SatelliteService
from app.services.domain.window_search import SearchPolicy, WEEKS_PER_MONTH


def get_raster_service(
    provider: Annotated[AnalyticsClientProvider, Depends(get_analytics_provider)],
) -> RasterService:
    """
    Dependency factory for the RasterService.

    The analytics session is initialized on the first remote call, which
    happens after request validation.
    """
    return DeferredRasterService(provider)


RasterServiceDep = Annotated[RasterService, Depends(get_raster_service)]


def get_biomass_service(raster_service: RasterServiceDep) -> BiomassService:
    """
    Dependency factory for BiomassService.

    Args:
        raster_service: Analytics platform client (injected)

    Returns:
        BiomassService instance
    """
    return BiomassService(
        raster_service=raster_service,
        cloud_cover_max=settings.agb_cloud_cover_max,
        search_policy=SearchPolicy.for_months(settings.agb_search_max_months, step_weeks=1),
    )


def get_satellite_service(raster_service: RasterServiceDep) -> SatelliteService:
    return SatelliteService(raster_service=raster_service)


def get_classification_service(raster_service: RasterServiceDep) -> ClassificationService:
    return ClassificationService(
        raster_service=raster_service,
        search_policy=SearchPolicy.for_months(
            settings.land_cover_search_max_months,
            step_weeks=WEEKS_PER_MONTH,
            symmetric=False,
        ),
    )


# Type aliases for cleaner route signatures
BiomassServiceDep = Annotated[BiomassService, Depends(get_biomass_service)]
SatelliteServiceDep = Annotated[SatelliteService, Depends(get_satellite_service)]
ClassificationServiceDep = Annotated[ClassificationService, Depends(get_classification_service)]
