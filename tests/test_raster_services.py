"""
Tests for the raster service implementations and their shared helpers.
"""
import asyncio
import pytest
import numpy as np
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import ee

from app.config import Settings
from app.domain.errors import ConfigurationError
from app.domain.models import DateWindow, Geometry, LandCoverSource, Sensor
from app.infrastructure.earth_engine_client import (
    EarthEngineRasterService,
    _or_masked,
    parse_class_areas,
    parse_region_statistics,
    tile_url_from_map_id,
)
from app.infrastructure.raster_service import (
    RemoteServiceError,
    normalize_tile_url,
    with_timeout,
)
from app.infrastructure.in_memory_raster_service import InMemoryRasterService
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND
from app.utils.spatial_helpers import grid_for_geometry

JANUARY = DateWindow(date(2024, 1, 1), date(2024, 2, 1))


# ============================================================
# Shared Helper Tests
# ============================================================

class TestTileUrl:
    """Tests for map URL normalization."""

    @pytest.mark.parametrize("url, expected", [
        ("https://maps.example/v1/maps/abc", "https://maps.example/v1/maps/abc/tiles/{z}/{x}/{y}"),
        ("https://maps.example/v1/maps/abc/", "https://maps.example/v1/maps/abc/tiles/{z}/{x}/{y}"),
        ("https://maps.example/v1/maps/abc/tiles", "https://maps.example/v1/maps/abc/tiles/{z}/{x}/{y}"),
        ("https://maps.example/v1/maps/abc/tiles/{z}/{x}/{y}", "https://maps.example/v1/maps/abc/tiles/{z}/{x}/{y}"),
    ])
    def test_normalize(self, url, expected):
        assert normalize_tile_url(url) == expected


class TestTimeout:
    """Tests for bounding remote calls."""

    @pytest.mark.asyncio
    async def test_result_passes_through(self):
        async def quick():
            return 42
        assert await with_timeout(quick(), 1.0, "quick call") == 42

    @pytest.mark.asyncio
    async def test_timeout_becomes_remote_error(self):
        with pytest.raises(RemoteServiceError, match="slow call timed out") as exc_info:
            await with_timeout(asyncio.sleep(1.0), 0.01, "slow call")
        assert exc_info.value.operation == "slow call"


# ============================================================
# Earth Engine Client Tests
# ============================================================

class TestEarthEngineClient:
    """Tests for the Earth Engine backend that need no network access."""

    @pytest.mark.asyncio
    async def test_missing_credentials_named(self):
        config = Settings(
            _env_file=None,
            gee_service_account_email="svc@project.iam.gserviceaccount.com",
            gee_private_key="",
            gee_project_id="project",
        )

        with pytest.raises(ConfigurationError, match="GEE_PRIVATE_KEY"):
            await EarthEngineRasterService.connect(config)

    @pytest.mark.asyncio
    async def test_all_missing_credentials_listed(self):
        config = Settings(
            _env_file=None,
            gee_service_account_email="",
            gee_private_key="",
            gee_project_id="",
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await EarthEngineRasterService.connect(config)

        assert "GEE_SERVICE_ACCOUNT_EMAIL" in exc_info.value.message
        assert "GEE_PROJECT_ID" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_platform_error_becomes_remote_error(self):
        service = EarthEngineRasterService(timeout=5.0)

        def failing_call():
            raise ee.EEException("User memory limit exceeded")

        with pytest.raises(RemoteServiceError, match="memory limit") as exc_info:
            await service._evaluate(failing_call, "reduce AGB")
        assert exc_info.value.operation == "reduce AGB"

    @pytest.mark.asyncio
    async def test_evaluation_result_returned(self):
        service = EarthEngineRasterService(timeout=5.0)
        assert await service._evaluate(lambda: 7, "count") == 7


class TestEarthEngineResults:
    """Tests for reading evaluated Earth Engine results."""

    def test_region_statistics(self):
        result = {
            "AGB_mean": 118.4,
            "AGB_min": 52.0,
            "AGB_max": 201.5,
            "AGB_stdDev": 21.7,
            "AGB_count": 121,
        }

        stats = parse_region_statistics(result, "AGB")

        assert stats.mean == 118.4
        assert stats.min == 52.0
        assert stats.max == 201.5
        assert stats.std_dev == 21.7
        assert stats.pixel_count == 121

    def test_region_statistics_without_pixels(self):
        """Fully masked regions reduce to null values and a zero count."""
        result = {"NDVI_mean": None, "NDVI_min": None, "NDVI_max": None, "NDVI_stdDev": None, "NDVI_count": 0}

        assert parse_region_statistics(result, "NDVI").is_empty
        assert parse_region_statistics(None, "NDVI").is_empty

    def test_class_areas(self):
        result = {"groups": [{"class": 1, "sum": 6050.2}, {"class": 6.0, "sum": 5001}]}
        assert parse_class_areas(result) == {1: 6050.2, 6: 5001.0}

    def test_class_areas_without_groups(self):
        assert parse_class_areas({}) == {}

    def test_tile_url_from_map_id(self):
        map_id = {
            "mapid": "projects/earthengine-legacy/maps/abc",
            "tile_fetcher": SimpleNamespace(
                url_format="https://earthengine.googleapis.com/v1/projects/earthengine-legacy/maps/abc/tiles/{z}/{x}/{y}"
            ),
        }
        assert tile_url_from_map_id(map_id) == (
            "https://earthengine.googleapis.com/v1/projects/earthengine-legacy/maps/abc/tiles/{z}/{x}/{y}"
        )

    def test_empty_collection_gets_masked_placeholder(self):
        """An empty collection is swapped for one masked image carrying the band names."""
        collection = MagicMock()

        with patch("app.infrastructure.earth_engine_client.ee") as mock_ee:
            _or_masked(collection, ["B2", "B4", "B8"])

        mock_ee.Image.constant.assert_called_once_with([0, 0, 0])
        placeholder = mock_ee.Image.constant.return_value.toFloat.return_value
        placeholder.rename.assert_called_once_with(["B2", "B4", "B8"])
        placeholder.rename.return_value.updateMask.assert_called_once_with(0)

        condition, present, fallback = mock_ee.Algorithms.If.call_args.args
        collection.size.return_value.gt.assert_called_once_with(0)
        assert condition is collection.size.return_value.gt.return_value
        assert present is collection
        assert fallback is mock_ee.ImageCollection.return_value

    @pytest.mark.asyncio
    async def test_radar_composite_guards_empty_collection(self, square_geometry):
        service = EarthEngineRasterService(timeout=5.0)

        with patch("app.infrastructure.earth_engine_client.ee") as mock_ee:
            await service.composite(Sensor.SENTINEL1, square_geometry, JANUARY)

        mock_ee.Image.constant.assert_called_once_with([0, 0])
        mock_ee.Image.constant.return_value.toFloat.return_value.rename.assert_called_once_with(["VV", "VH"])
        mock_ee.Algorithms.If.assert_called_once()


# ============================================================
# In-Memory Backend Tests
# ============================================================

class TestInMemoryRasterService:
    """Tests for catalog filtering and evaluation in the local backend."""

    @pytest.mark.asyncio
    async def test_cloud_filter_is_strict(self, analysis_grid, make_s2_scene, square_geometry):
        service = InMemoryRasterService(scenes=[
            make_s2_scene(analysis_grid, date(2024, 1, 5), cloud_cover=10.0),
            make_s2_scene(analysis_grid, date(2024, 1, 6), cloud_cover=30.0),
            make_s2_scene(analysis_grid, date(2024, 1, 7), cloud_cover=45.0),
        ])

        assert await service.count_scenes(Sensor.SENTINEL2, square_geometry, JANUARY) == 3
        assert await service.count_scenes(Sensor.SENTINEL2, square_geometry, JANUARY, 30.0) == 1

    @pytest.mark.asyncio
    async def test_window_end_is_exclusive(self, analysis_grid, make_s1_scene, square_geometry):
        service = InMemoryRasterService(scenes=[make_s1_scene(analysis_grid, date(2024, 2, 1))])
        assert await service.count_scenes(Sensor.SENTINEL1, square_geometry, JANUARY) == 0

    @pytest.mark.asyncio
    async def test_distant_scenes_not_counted(self, make_s1_scene, square_geometry):
        cape_town = Geometry.from_coordinates([[
            [18.4, -33.9], [18.401, -33.9], [18.401, -33.899], [18.4, -33.899], [18.4, -33.9],
        ]])
        elsewhere = grid_for_geometry(cape_town, 10)
        service = InMemoryRasterService(scenes=[make_s1_scene(elsewhere, date(2024, 1, 10))])

        assert await service.count_scenes(Sensor.SENTINEL1, square_geometry, JANUARY) == 0

    @pytest.mark.asyncio
    async def test_lidar_footprints_inside_polygon(self, analysis_grid, make_gedi_scene, square_geometry):
        good = make_gedi_scene(analysis_grid, date(2024, 1, 10))
        degraded = make_gedi_scene(analysis_grid, date(2024, 1, 20), degrade=1.0)
        service = InMemoryRasterService(scenes=[good, degraded])

        assert await service.count_lidar_footprints(square_geometry, JANUARY) == 121

    @pytest.mark.asyncio
    async def test_gedi_composite_is_canopy_height(self, analysis_grid, make_gedi_scene, square_geometry):
        service = InMemoryRasterService(scenes=[
            make_gedi_scene(analysis_grid, date(2024, 1, 10), rh98=20.0),
            make_gedi_scene(analysis_grid, date(2024, 1, 20), rh98=30.0),
        ])

        composite = await service.composite(Sensor.GEDI, square_geometry, JANUARY)

        assert composite.band_names == [CANOPY_HEIGHT_BAND]
        assert np.allclose(composite.band(CANOPY_HEIGHT_BAND), 25.0)

    @pytest.mark.asyncio
    async def test_optical_composite_has_indices(self, analysis_grid, make_s2_scene, square_geometry):
        service = InMemoryRasterService(scenes=[make_s2_scene(analysis_grid, date(2024, 1, 5))])

        composite = await service.composite(Sensor.SENTINEL2, square_geometry, JANUARY)
        stats = await service.reduce_region(composite, "NDVI", square_geometry)

        assert stats.mean == pytest.approx(0.27 / 0.33)
        assert stats.pixel_count == 121

    @pytest.mark.asyncio
    async def test_composite_aligns_scenes_on_different_grids(
        self, square_geometry, analysis_grid, make_s2_scene
    ):
        coarse = grid_for_geometry(square_geometry, 20)
        service = InMemoryRasterService(scenes=[
            make_s2_scene(analysis_grid, date(2024, 1, 5)),
            make_s2_scene(coarse, date(2024, 1, 15)),
        ])

        composite = await service.composite(Sensor.SENTINEL2, square_geometry, JANUARY)
        stats = await service.reduce_region(composite, "NDVI", square_geometry)

        assert composite.grid == analysis_grid
        assert stats.mean == pytest.approx(0.27 / 0.33)

    @pytest.mark.asyncio
    async def test_land_cover_labels_aligned_without_blending(
        self, square_geometry, analysis_grid, make_land_cover_scene
    ):
        coarse = grid_for_geometry(square_geometry, 20)
        service = InMemoryRasterService(scenes=[
            make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 1, 5), west=1, east=6),
            make_land_cover_scene(coarse, Sensor.DYNAMIC_WORLD, date(2024, 1, 15), west=1, east=6),
        ])

        image = await service.land_cover_image(LandCoverSource.DYNAMIC_WORLD, square_geometry, window=JANUARY)
        areas = await service.class_areas(image, square_geometry)

        assert set(areas) == {1, 6}

    @pytest.mark.asyncio
    async def test_reduce_region_of_empty_composite(self, empty_service, square_geometry):
        composite = await empty_service.composite(Sensor.SENTINEL1, square_geometry, JANUARY)
        stats = await empty_service.reduce_region(composite, "VV", square_geometry)
        assert stats.is_empty

    @pytest.mark.asyncio
    async def test_tile_url_is_templated(self, empty_service, analysis_grid, make_raster):
        url = await empty_service.tile_url(make_raster(analysis_grid, AGB=1.0), {})
        assert url.startswith("memory://maps/")
        assert url.endswith("/tiles/{z}/{x}/{y}")
