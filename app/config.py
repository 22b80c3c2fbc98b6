"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Remote Analytics Platform (Google Earth Engine)
    gee_service_account_email: str = Field(
        default="",
        description="Service account e-mail used to authenticate with Earth Engine"
    )
    gee_private_key: str = Field(
        default="",
        description="Service account private key (PEM or JSON key file contents)"
    )
    gee_project_id: str = Field(
        default="",
        description="Cloud project the Earth Engine session is billed to"
    )
    analytics_backend: str = Field(
        default="earthengine",
        description="Raster backend: 'earthengine' or 'memory' (offline, in-process)"
    )
    initialize_on_startup: bool = Field(
        default=True,
        description="Initialize the analytics session when the application starts"
    )
    remote_call_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for a single remote analytics call"
    )

    # Analysis Parameters
    agb_cloud_cover_max: float = Field(
        default=30.0,
        description="Maximum scene cloud percentage accepted for biomass estimation"
    )
    default_cloud_cover_max: float = Field(
        default=20.0,
        description="Default maximum scene cloud percentage for multi-sensor statistics"
    )
    analysis_scale: int = Field(
        default=10,
        description="Nominal scale in meters for harmonization and region reductions"
    )
    max_pixels: float = Field(
        default=1e13,
        description="Pixel budget for a single region reduction"
    )
    best_effort: bool = Field(
        default=True,
        description="Approximate statistics instead of failing when the pixel budget is exceeded"
    )
    agb_search_max_months: int = Field(
        default=3,
        description="Maximum lookback (months of 4 weeks) when searching for biomass imagery"
    )
    land_cover_search_max_months: int = Field(
        default=12,
        description="Maximum lookback (months of 4 weeks) when searching for Dynamic World imagery"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="Land Cover & Carbon Analytics API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    environment: str = Field(
        default="development",
        description="Deployment environment; error details are hidden in 'production'"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    @property
    def expose_error_details(self) -> bool:
        return self.debug or self.environment.lower() != "production"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
