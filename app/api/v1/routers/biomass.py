"""
API router for above-ground biomass endpoints.
"""
from fastapi import APIRouter, Request

from app.api.dependencies import BiomassServiceDep
from app.api.v1.models.requests import AGBRequest
from app.api.v1.models.responses import AGBResponse
from app.middleware.rate_limit import ANALYSIS_RATE_LIMIT, RATE_LIMIT_RESPONSE, limiter


router = APIRouter(
    prefix="/agb",
    tags=["biomass"],
)


@router.post(
    "",
    response_model=AGBResponse,
    summary="Estimate above-ground biomass change",
    description="""
    Estimate above-ground biomass (AGB) for a polygon at two dates and the change between them.

    For each date:
    1. Searches for the closest Sentinel-2 imagery (widening by one week up to AGB_SEARCH_MAX_MONTHS, 12 weeks by default)
    2. Builds cloud-masked Sentinel-2, Sentinel-1 and (when available) GEDI composites
    3. Derives NDVI, EVI, LAI and RVI and harmonizes all bands to a 10m EPSG:4326 grid
    4. Applies the regression
       `AGB = -150 + 200·NDVI + 150·EVI - 20·VH + 50·RVI (+ 15·CanopyHeight)`, clamped to 0-500 t/ha
    5. Computes mean/min/max/stdDev for AGB and every input band

    Without GEDI footprints the canopy height term is dropped and a warning is returned.
    """,
    responses={
        400: {
            "description": "Missing or invalid request parameters",
            "content": {
                "application/json": {
                    "example": {"error": "Missing required parameters: endDate"}
                }
            }
        },
        500: {
            "description": "No imagery within the search bound, or analytics platform failure",
            "content": {
                "application/json": {
                    "example": {
                        "error": "No satellite data found within 12 weeks of 2020-01-01",
                        "targetDate": "2020-01-01",
                        "searchedWeeks": 12,
                    }
                }
            }
        },
        **RATE_LIMIT_RESPONSE,
    }
)
@limiter.limit(ANALYSIS_RATE_LIMIT)
async def estimate_biomass_change(
    request: Request,
    body: AGBRequest,
    biomass_service: BiomassServiceDep,
) -> AGBResponse:
    """
    Estimate biomass at two dates and the change between them.

    Args:
        request: Incoming request (used for rate limiting)
        body: Polygon and the two target dates
        biomass_service: Biomass service (injected dependency)

    Returns:
        AGBResponse
    """
    report = await biomass_service.estimate_change(
        geometry=body.geometry.to_domain(),
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return AGBResponse.from_report(report)
