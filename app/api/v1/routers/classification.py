"""
API router for land-cover classification.
"""
from fastapi import APIRouter, Request

from app.api.dependencies import ClassificationServiceDep
from app.api.v1.models.requests import ClassifyRequest
from app.api.v1.models.responses import ClassificationResponse
from app.middleware.rate_limit import ANALYSIS_RATE_LIMIT, RATE_LIMIT_RESPONSE, limiter


router = APIRouter(
    prefix="/classify",
    tags=["classification"],
)


@router.post(
    "",
    response_model=ClassificationResponse,
    summary="Classify land cover",
    description="""
    Classify the land cover inside a polygon and report the area of each class.

    - With `useDynamicWorld` and both dates: Dynamic World labels, per-pixel mode over the
      most recent month(s) before `endDate` (looking back up to 12 months)
    - Otherwise: ESA WorldCover for `year`

    Area statistics are sorted by area, largest first.
    """,
    responses={
        400: {"description": "Missing or invalid request parameters"},
        500: {"description": "No Dynamic World imagery within the search bound, or analytics platform failure"},
        **RATE_LIMIT_RESPONSE,
    }
)
@limiter.limit(ANALYSIS_RATE_LIMIT)
async def classify_land_cover(
    request: Request,
    body: ClassifyRequest,
    classification_service: ClassificationServiceDep,
) -> ClassificationResponse:
    """
    Classify land cover for a polygon.

    Args:
        request: Incoming request (used for rate limiting)
        body: Polygon, product selection and dates
        classification_service: Classification service (injected dependency)

    Returns:
        ClassificationResponse
    """
    report = await classification_service.classify(
        geometry=body.geometry.to_domain(),
        year=body.year,
        use_dynamic_world=body.use_dynamic_world,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return ClassificationResponse.from_report(report)
