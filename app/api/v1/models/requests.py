"""
API request models using Pydantic.

Field names follow the dashboard's camelCase JSON; snake_case names are
accepted as well.
"""
from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.domain.models import Geometry


class PolygonGeometry(BaseModel):
    """GeoJSON Polygon drawn on the map."""
    type: Literal["Polygon"] = Field(
        default="Polygon",
        description="GeoJSON geometry type"
    )
    coordinates: List[List[List[float]]] = Field(
        description="Linear rings of [longitude, latitude] pairs; the first ring is the exterior",
        min_length=1,
    )

    @field_validator("coordinates")
    @classmethod
    def check_rings(cls, rings: List[List[List[float]]]) -> List[List[List[float]]]:
        for ring in rings:
            if len(ring) < 4:
                raise ValueError("each polygon ring needs at least 4 positions")
            if any(len(position) < 2 for position in ring):
                raise ValueError("positions must be [longitude, latitude] pairs")
        return rings

    def to_domain(self) -> Geometry:
        return Geometry.from_coordinates(self.coordinates)

    class Config:
        json_schema_extra = {
            "example": {
                "type": "Polygon",
                "coordinates": [[
                    [-62.215, -3.465],
                    [-62.205, -3.465],
                    [-62.205, -3.455],
                    [-62.215, -3.455],
                    [-62.215, -3.465],
                ]]
            }
        }


class AGBRequest(BaseModel):
    """Request body for biomass change estimation."""
    geometry: PolygonGeometry
    start_date: date = Field(
        alias="startDate",
        description="Historical target date (ISO 8601)"
    )
    end_date: date = Field(
        alias="endDate",
        description="Current target date (ISO 8601)"
    )

    class Config:
        populate_by_name = True


class SatelliteRequest(BaseModel):
    """Request body for multi-sensor statistics."""
    geometry: PolygonGeometry
    start_date: date = Field(
        alias="startDate",
        description="First day of the date range (ISO 8601)"
    )
    end_date: date = Field(
        alias="endDate",
        description="End of the date range, exclusive (ISO 8601)"
    )
    cloud_cover_max: float = Field(
        default_factory=lambda: settings.default_cloud_cover_max,
        alias="cloudCoverMax",
        ge=0,
        le=100,
        description="Maximum scene cloud percentage for Sentinel-2 imagery"
    )

    class Config:
        populate_by_name = True


class ClassifyRequest(BaseModel):
    """Request body for land-cover classification."""
    geometry: PolygonGeometry
    year: int = Field(
        default=2021,
        ge=2015,
        description="ESA WorldCover map year (2020 map up to 2020, 2021 map afterwards)"
    )
    use_dynamic_world: bool = Field(
        default=True,
        alias="useDynamicWorld",
        description="Use the Dynamic World classifier when a date range is given"
    )
    start_date: Optional[date] = Field(
        default=None,
        alias="startDate",
        description="Start of the requested range (ISO 8601)"
    )
    end_date: Optional[date] = Field(
        default=None,
        alias="endDate",
        description="Classification date (ISO 8601)"
    )

    class Config:
        populate_by_name = True
