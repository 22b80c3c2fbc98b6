"""
Infrastructure layer: contract of the remote raster analytics platform.

The application services only talk to the platform through this protocol.
Image handles returned by one method are opaque and are only ever passed
back to the same service instance.
"""
from typing import Any, Awaitable, Optional, Protocol, TypeVar
import asyncio
import logging

from app.domain.models import (
    BandStatistics,
    DateWindow,
    Geometry,
    LandCoverSource,
    Sensor,
)
from app.services.domain.agb_model import AGBModel

logger = logging.getLogger(__name__)

T = TypeVar("T")

TILE_TEMPLATE = "{z}/{x}/{y}"


class RemoteServiceError(Exception):
    """A call to the analytics platform failed or timed out."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class RasterService(Protocol):
    """Narrow async interface over the analytics platform."""

    async def count_scenes(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> int:
        """Number of scenes of a sensor intersecting the geometry in the window."""
        ...

    async def count_lidar_footprints(self, geometry: Geometry, window: DateWindow) -> int:
        """Number of good-quality lidar samples inside the geometry in the window."""
        ...

    async def composite(
        self,
        sensor: Sensor,
        geometry: Geometry,
        window: DateWindow,
        cloud_cover_max: Optional[float] = None,
    ) -> Any:
        """
        Per-sensor composite with derived bands.

        Sentinel-2 composites carry NDVI/EVI/LAI, Sentinel-1 composites
        VV/VH/RVI, and GEDI composites CanopyHeight.
        """
        ...

    async def harmonize(self, optical: Any, radar: Any, lidar: Optional[Any] = None) -> Any:
        ...

    async def apply_agb_model(self, image: Any, model: AGBModel) -> Any:
        ...

    async def reduce_region(self, image: Any, band: str, geometry: Geometry) -> BandStatistics:
        ...

    async def tile_url(self, image: Any, vis_params: dict) -> str:
        """{z}/{x}/{y}-templated map tile URL for an image."""
        ...

    async def land_cover_image(
        self,
        source: LandCoverSource,
        geometry: Geometry,
        window: Optional[DateWindow] = None,
        year: Optional[int] = None,
    ) -> Any:
        """Single-band 'classification' image for the geometry."""
        ...

    async def class_areas(self, image: Any, geometry: Geometry) -> dict[int, float]:
        """Area in square meters per class value of a classification image."""
        ...


def normalize_tile_url(url: str) -> str:
    """
    Turn a map URL returned by the platform into a tile template.

    Examples:
        .../maps/abc          -> .../maps/abc/tiles/{z}/{x}/{y}
        .../maps/abc/tiles    -> .../maps/abc/tiles/{z}/{x}/{y}
        .../tiles/{z}/{x}/{y} -> unchanged
    """
    if "{z}" in url:
        return url
    base = url.rstrip("/")
    if base.endswith("/tiles"):
        return f"{base}/{TILE_TEMPLATE}"
    return f"{base}/tiles/{TILE_TEMPLATE}"


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str = "remote call",
) -> T:
    """
    Await a remote call, failing with RemoteServiceError after `timeout` seconds.

    Args:
        awaitable: The pending remote call
        timeout: Seconds to wait; None waits indefinitely
        operation: Name used in the error message

    Raises:
        RemoteServiceError: If the call does not complete in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"{operation} timed out after {timeout}s")
        raise RemoteServiceError(
            f"{operation} timed out after {timeout} seconds",
            operation=operation,
        ) from e
