"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- A small polygon and its 10m analysis grid
- Synthetic Sentinel-2, Sentinel-1, GEDI and land-cover scenes
- In-memory raster services with scene catalogs
- FastAPI test client with the raster service overridden
"""
import pytest
import numpy as np
from datetime import date
from typing import Callable
from fastapi.testclient import TestClient

from app.main import app
from app.api.dependencies import get_raster_service
from app.domain.models import Geometry, Sensor
from app.domain.raster import GridSpec, Raster
from app.infrastructure.api_constants import CollectionFilters
from app.infrastructure.in_memory_raster_service import InMemoryRasterService, Scene
from app.utils.spatial_helpers import grid_for_geometry


# ============================================================
# Geometry Fixtures
# ============================================================

# Amazon lowland forest, roughly 1.2 ha
SQUARE_LON = -62.215
SQUARE_LAT = -3.465
SQUARE_SIDE = 0.001


def square(lon: float, lat: float, side: float) -> Geometry:
    return Geometry.from_coordinates([[
        [lon, lat],
        [lon + side, lat],
        [lon + side, lat + side],
        [lon, lat + side],
        [lon, lat],
    ]])


@pytest.fixture
def square_geometry() -> Geometry:
    """A closed square polygon of about 111m x 111m."""
    return square(SQUARE_LON, SQUARE_LAT, SQUARE_SIDE)


@pytest.fixture
def square_geojson(square_geometry) -> dict:
    return square_geometry.to_geojson()


@pytest.fixture
def analysis_grid(square_geometry) -> GridSpec:
    """10m EPSG:4326 grid covering the square."""
    return grid_for_geometry(square_geometry, 10)


# ============================================================
# Raster and Scene Factories
# ============================================================

@pytest.fixture
def make_raster() -> Callable[..., Raster]:
    """Factory for rasters with one constant value per band."""
    def _make(grid: GridSpec, **bands: float) -> Raster:
        return Raster({name: np.full(grid.shape, value, dtype=float) for name, value in bands.items()}, grid)
    return _make


@pytest.fixture
def make_s2_scene(make_raster) -> Callable[..., Scene]:
    """Factory for Sentinel-2 scenes (digital numbers, QA60 clear by default)."""
    def _make(
        grid: GridSpec,
        acquired: date,
        b2: float = 400.0,
        b4: float = 300.0,
        b8: float = 3000.0,
        qa: float = 0.0,
        cloud_cover: float = 5.0,
    ) -> Scene:
        return Scene(
            sensor=Sensor.SENTINEL2,
            acquired=acquired,
            raster=make_raster(grid, B2=b2, B4=b4, B8=b8, QA60=qa),
            properties={CollectionFilters.CLOUD_COVER_PROPERTY: cloud_cover},
        )
    return _make


@pytest.fixture
def make_s1_scene(make_raster) -> Callable[..., Scene]:
    """Factory for Sentinel-1 scenes."""
    def _make(grid: GridSpec, acquired: date, vv: float = 0.1, vh: float = 0.02) -> Scene:
        return Scene(sensor=Sensor.SENTINEL1, acquired=acquired, raster=make_raster(grid, VV=vv, VH=vh))
    return _make


@pytest.fixture
def make_gedi_scene(make_raster) -> Callable[..., Scene]:
    """Factory for GEDI monthly rasters with quality flags."""
    def _make(
        grid: GridSpec,
        acquired: date,
        rh98: float = 20.0,
        quality: float = 1.0,
        degrade: float = 0.0,
    ) -> Scene:
        return Scene(
            sensor=Sensor.GEDI,
            acquired=acquired,
            raster=make_raster(grid, rh98=rh98, quality_flag=quality, degrade_flag=degrade),
        )
    return _make


@pytest.fixture
def make_land_cover_scene() -> Callable[..., Scene]:
    """Factory for classification scenes split into a western and an eastern class."""
    def _make(grid: GridSpec, sensor: Sensor, acquired: date, west: int, east: int) -> Scene:
        band = (
            CollectionFilters.DYNAMIC_WORLD_LABEL_BAND
            if sensor == Sensor.DYNAMIC_WORLD
            else CollectionFilters.WORLDCOVER_MAP_BAND
        )
        values = np.full(grid.shape, float(west))
        values[:, grid.width // 2:] = float(east)
        return Scene(sensor=sensor, acquired=acquired, raster=Raster({band: values}, grid))
    return _make


# ============================================================
# Raster Service Fixtures
# ============================================================

@pytest.fixture
def empty_service() -> InMemoryRasterService:
    """Raster service whose catalog has no scenes at all."""
    return InMemoryRasterService()


@pytest.fixture
def biomass_service_catalog(analysis_grid, make_s2_scene, make_s1_scene) -> InMemoryRasterService:
    """
    Optical and radar scenes near 2020-01-01 and 2024-01-01, no lidar.

    The 2024 scenes have a denser canopy (higher NIR) than the 2020 scenes.
    """
    return InMemoryRasterService(scenes=[
        make_s2_scene(analysis_grid, date(2020, 1, 3), b8=2500.0),
        make_s1_scene(analysis_grid, date(2020, 1, 4)),
        make_s2_scene(analysis_grid, date(2023, 12, 29), b8=3000.0),
        make_s1_scene(analysis_grid, date(2023, 12, 30)),
    ])


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)


@pytest.fixture
def use_raster_service():
    """Install a raster service for the API; overrides are cleared afterwards."""
    def _install(service) -> None:
        app.dependency_overrides[get_raster_service] = lambda: service
    yield _install
    app.dependency_overrides.clear()
