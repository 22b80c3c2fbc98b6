"""
Tests for land-cover images and class areas from the in-memory backend.
"""
import pytest
from datetime import date

from app.domain.models import DateWindow, LandCoverSource, Sensor
from app.infrastructure.in_memory_raster_service import InMemoryRasterService
from app.services.domain.land_cover import CLASSIFICATION_BAND
from app.utils.geo_projection import geodesic_area_m2


@pytest.fixture
def land_cover_catalog(analysis_grid, make_land_cover_scene) -> InMemoryRasterService:
    """WorldCover 2020 and 2021 maps plus three Dynamic World scenes."""
    return InMemoryRasterService(scenes=[
        make_land_cover_scene(analysis_grid, Sensor.WORLDCOVER, date(2020, 1, 1), west=10, east=40),
        make_land_cover_scene(analysis_grid, Sensor.WORLDCOVER, date(2021, 1, 1), west=10, east=50),
        make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 5, 2), west=1, east=4),
        make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 5, 12), west=1, east=6),
        make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 5, 20), west=1, east=6),
    ])


# ============================================================
# WorldCover Tests
# ============================================================

class TestWorldCover:
    """Tests for the annual WorldCover map."""

    @pytest.mark.asyncio
    async def test_release_follows_year(self, land_cover_catalog, square_geometry):
        """Years up to 2020 use the 2020 map, later years the 2021 map."""
        older = await land_cover_catalog.land_cover_image(
            LandCoverSource.WORLDCOVER, square_geometry, year=2019
        )
        newer = await land_cover_catalog.land_cover_image(
            LandCoverSource.WORLDCOVER, square_geometry, year=2023
        )

        assert set(await land_cover_catalog.class_areas(older, square_geometry)) == {10, 40}
        assert set(await land_cover_catalog.class_areas(newer, square_geometry)) == {10, 50}

    @pytest.mark.asyncio
    async def test_class_areas_sum_to_polygon_area(self, land_cover_catalog, square_geometry):
        image = await land_cover_catalog.land_cover_image(
            LandCoverSource.WORLDCOVER, square_geometry, year=2021
        )
        areas = await land_cover_catalog.class_areas(image, square_geometry)

        assert sum(areas.values()) == pytest.approx(geodesic_area_m2(square_geometry), rel=1e-4)
        assert all(area > 0 for area in areas.values())

    @pytest.mark.asyncio
    async def test_missing_map_gives_no_classes(self, empty_service, square_geometry):
        image = await empty_service.land_cover_image(
            LandCoverSource.WORLDCOVER, square_geometry, year=2021
        )

        assert image.band_names == [CLASSIFICATION_BAND]
        assert await empty_service.class_areas(image, square_geometry) == {}


# ============================================================
# Dynamic World Tests
# ============================================================

class TestDynamicWorld:
    """Tests for the Dynamic World label composite."""

    @pytest.mark.asyncio
    async def test_mode_of_labels_in_window(self, land_cover_catalog, square_geometry):
        window = DateWindow(date(2024, 5, 1), date(2024, 6, 1))
        image = await land_cover_catalog.land_cover_image(
            LandCoverSource.DYNAMIC_WORLD, square_geometry, window=window
        )
        areas = await land_cover_catalog.class_areas(image, square_geometry)

        # East half is Crops once and Built twice
        assert set(areas) == {1, 6}

    @pytest.mark.asyncio
    async def test_window_limits_scenes(self, land_cover_catalog, square_geometry):
        window = DateWindow(date(2024, 5, 1), date(2024, 5, 10))
        image = await land_cover_catalog.land_cover_image(
            LandCoverSource.DYNAMIC_WORLD, square_geometry, window=window
        )
        areas = await land_cover_catalog.class_areas(image, square_geometry)

        assert set(areas) == {1, 4}

    @pytest.mark.asyncio
    async def test_window_required(self, land_cover_catalog, square_geometry):
        with pytest.raises(ValueError, match="date window"):
            await land_cover_catalog.land_cover_image(LandCoverSource.DYNAMIC_WORLD, square_geometry)
