"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.domain.errors import ConfigurationError
from app.infrastructure.client_provider import get_analytics_provider
from app.infrastructure.raster_service import RemoteServiceError
from app.middleware.error_handler import ErrorHandlerMiddleware, validation_exception_handler
from app.middleware.rate_limit import limiter
from app.api.v1.routers import biomass, classification, satellite

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Initializes the analytics session at startup. A failed initialization
    does not stop the application: each request retries it and reports the
    error until the configuration is fixed.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Analytics backend: {settings.analytics_backend}, "
                f"scale={settings.analysis_scale}m, timeout={settings.remote_call_timeout}s")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    if settings.initialize_on_startup:
        try:
            await get_analytics_provider().get()
        except (ConfigurationError, RemoteServiceError) as e:
            logger.error(f"Analytics client not initialized at startup: {e}")

    yield

    # Shutdown
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Land Cover & Carbon Analytics API

    This API estimates above-ground biomass and classifies land cover for user-drawn
    polygons using Sentinel-2, Sentinel-1 and GEDI imagery on Google Earth Engine.

    ## Features

    - **Biomass Change**: Multi-sensor AGB regression at two dates with change analysis
    - **Adaptive Window Search**: Widens the search around each target date until imagery is found
    - **Graceful Degradation**: Drops the canopy height term when no GEDI footprints exist
    - **Multi-Sensor Statistics**: NDVI, EVI, LAI, VV, VH, RVI and canopy height per polygon
    - **Land Cover**: Dynamic World or ESA WorldCover classes with geodesic area statistics
    - **Rate Limiting**: Protects the API from abuse

    ## Biomass Model

    AGB (t/ha) = -150 + 200·NDVI + 150·EVI - 20·VH + 50·RVI + 15·CanopyHeight,
    clamped to [0, 500]. Coefficients are calibrated for tropical forests.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Missing or malformed request fields are client errors
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(biomass.router, prefix="/api/v1")
app.include_router(satellite.router, prefix="/api/v1")
app.include_router(classification.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status, including whether the analytics session is initialized
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "analyticsInitialized": get_analytics_provider().is_initialized,
    }
