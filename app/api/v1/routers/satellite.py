"""
API router for multi-sensor satellite statistics.
"""
from fastapi import APIRouter, Request

from app.api.dependencies import SatelliteServiceDep
from app.api.v1.models.requests import SatelliteRequest
from app.api.v1.models.responses import SatelliteResponse
from app.middleware.rate_limit import ANALYSIS_RATE_LIMIT, RATE_LIMIT_RESPONSE, limiter


router = APIRouter(
    prefix="/satellite",
    tags=["satellite"],
)


@router.post(
    "",
    response_model=SatelliteResponse,
    summary="Get multi-sensor statistics",
    description="""
    Compute per-band mean/min/max over a polygon for a fixed date range:

    - Sentinel-2: NDVI, EVI, LAI (cloud-masked median composite)
    - Sentinel-1: VV, VH, RVI (median composite)
    - GEDI: CanopyHeight (RH98), only when footprints exist

    Missing sensors produce warnings instead of errors.
    """,
    responses={
        400: {"description": "Missing or invalid request parameters"},
        500: {"description": "Analytics platform failure"},
        **RATE_LIMIT_RESPONSE,
    }
)
@limiter.limit(ANALYSIS_RATE_LIMIT)
async def get_satellite_statistics(
    request: Request,
    body: SatelliteRequest,
    satellite_service: SatelliteServiceDep,
) -> SatelliteResponse:
    report = await satellite_service.get_statistics(
        geometry=body.geometry.to_domain(),
        start_date=body.start_date,
        end_date=body.end_date,
        cloud_cover_max=body.cloud_cover_max,
    )
    return SatelliteResponse.from_report(report)
