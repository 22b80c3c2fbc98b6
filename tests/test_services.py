"""
Tests for the application services running on the in-memory backend.
"""
import pytest
from datetime import date

from app.domain.errors import DataUnavailableError, ValidationError
from app.domain.models import DateWindow, Geometry, Sensor
from app.infrastructure.in_memory_raster_service import InMemoryRasterService
from app.infrastructure.raster_service import RemoteServiceError
from app.services.application.biomass_service import (
    GEDI_FAILED_WARNING,
    NO_GEDI_WARNING,
    BiomassService,
)
from app.services.application.classification_service import ClassificationService
from app.services.application.satellite_service import SatelliteService
from app.services.domain.agb_model import FULL_MODEL, REDUCED_MODEL
from app.services.domain.harmonizer import CANOPY_HEIGHT_BAND
from app.services.domain.window_search import SearchPolicy, WEEKS_PER_MONTH


class LidarOutageService(InMemoryRasterService):
    """Backend whose lidar collection cannot be queried."""

    async def count_lidar_footprints(self, geometry: Geometry, window: DateWindow) -> int:
        raise RemoteServiceError("GEDI collection unavailable", operation="count GEDI footprints")

    async def count_scenes(self, sensor, geometry, window, cloud_cover_max=None):
        if sensor == Sensor.GEDI:
            raise RemoteServiceError("GEDI collection unavailable", operation="count GEDI scenes")
        return await super().count_scenes(sensor, geometry, window, cloud_cover_max)


def means(result) -> dict:
    metrics = {band: stats.mean for band, stats in result.input_metrics.items() if stats is not None}
    return metrics


# ============================================================
# Biomass Service Tests
# ============================================================

class TestBiomassService:
    """Tests for biomass estimation and change."""

    @pytest.mark.asyncio
    async def test_change_between_dates(self, biomass_service_catalog, square_geometry):
        service = BiomassService(biomass_service_catalog)

        report = await service.estimate_change(square_geometry, date(2020, 1, 1), date(2024, 1, 1))

        assert report.start.agb.mean == pytest.approx(113.09, abs=0.05)
        assert report.end.agb.mean == pytest.approx(132.37, abs=0.05)
        assert report.change.mean_agb_change == round(report.end.agb.mean - report.start.agb.mean, 2)
        assert report.change.status == "Increase"
        assert report.search_weeks == 12
        assert report.start.months_used == 1
        assert report.start.data_quality.sentinel2_images == 1
        assert report.start.data_quality.sentinel1_images == 1

    @pytest.mark.asyncio
    async def test_reduced_model_without_lidar(self, biomass_service_catalog, square_geometry):
        """Mean AGB matches the reduced regression applied to the mean inputs."""
        service = BiomassService(biomass_service_catalog)

        result = await service.estimate_for_date(square_geometry, date(2020, 1, 1))

        assert result.model_variant == "reduced"
        assert result.input_metrics[CANOPY_HEIGHT_BAND] is None
        assert result.warnings == (NO_GEDI_WARNING,)
        assert result.data_quality.gedi_footprints == 0
        expected = float(REDUCED_MODEL.evaluate(means(result)))
        assert result.agb.mean == pytest.approx(expected, abs=0.5)

    @pytest.mark.asyncio
    async def test_total_biomass_is_mean_times_area(self, biomass_service_catalog, square_geometry):
        service = BiomassService(biomass_service_catalog)

        result = await service.estimate_for_date(square_geometry, date(2024, 1, 1))

        assert result.area_ha == pytest.approx(1.23, abs=0.01)
        assert result.total_biomass == pytest.approx(result.agb.mean * result.area_ha, rel=0.01)
        assert result.agb_tile_url.endswith("/tiles/{z}/{x}/{y}")

    @pytest.mark.asyncio
    async def test_full_model_with_lidar(
        self, biomass_service_catalog, analysis_grid, make_gedi_scene, square_geometry
    ):
        biomass_service_catalog.add_scene(make_gedi_scene(analysis_grid, date(2020, 1, 2), rh98=20.0))
        service = BiomassService(biomass_service_catalog)

        result = await service.estimate_for_date(square_geometry, date(2020, 1, 1))

        assert result.model_variant == "full"
        assert result.warnings == ()
        assert result.input_metrics[CANOPY_HEIGHT_BAND].mean == 20.0
        assert result.data_quality.gedi_footprints == 121
        expected = float(FULL_MODEL.evaluate(means(result)))
        assert result.agb.mean == pytest.approx(expected, abs=0.5)

    @pytest.mark.asyncio
    async def test_lidar_failure_degrades_to_reduced_model(
        self, analysis_grid, make_s2_scene, make_s1_scene, square_geometry
    ):
        backend = LidarOutageService(scenes=[
            make_s2_scene(analysis_grid, date(2020, 1, 3)),
            make_s1_scene(analysis_grid, date(2020, 1, 4)),
        ])

        result = await BiomassService(backend).estimate_for_date(square_geometry, date(2020, 1, 1))

        assert result.model_variant == "reduced"
        assert result.warnings == (GEDI_FAILED_WARNING,)

    @pytest.mark.asyncio
    async def test_window_widens_until_optical_data(
        self, analysis_grid, make_s2_scene, make_s1_scene, square_geometry
    ):
        backend = InMemoryRasterService(scenes=[
            make_s2_scene(analysis_grid, date(2023, 11, 27)),
            make_s1_scene(analysis_grid, date(2023, 11, 28)),
        ])

        result = await BiomassService(backend).estimate_for_date(square_geometry, date(2024, 1, 1))

        assert result.window == DateWindow(date(2023, 11, 27), date(2024, 2, 5))
        assert result.months_used == 2

    @pytest.mark.asyncio
    async def test_cloudy_scenes_are_not_used(
        self, analysis_grid, make_s2_scene, make_s1_scene, square_geometry
    ):
        backend = InMemoryRasterService(scenes=[
            make_s2_scene(analysis_grid, date(2024, 1, 2), cloud_cover=80.0),
            make_s1_scene(analysis_grid, date(2024, 1, 2)),
        ])

        with pytest.raises(DataUnavailableError) as exc_info:
            await BiomassService(backend).estimate_for_date(square_geometry, date(2024, 1, 1))
        assert exc_info.value.bound_weeks == 12

    @pytest.mark.asyncio
    async def test_missing_radar_is_unavailable(self, analysis_grid, make_s2_scene, square_geometry):
        backend = InMemoryRasterService(scenes=[make_s2_scene(analysis_grid, date(2024, 1, 2))])

        with pytest.raises(DataUnavailableError, match="Sentinel-1"):
            await BiomassService(backend).estimate_for_date(square_geometry, date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_fully_clouded_pixels_are_unavailable(
        self, analysis_grid, make_s2_scene, make_s1_scene, square_geometry
    ):
        backend = InMemoryRasterService(scenes=[
            make_s2_scene(analysis_grid, date(2024, 1, 2), qa=float(1 << 10)),
            make_s1_scene(analysis_grid, date(2024, 1, 2)),
        ])

        with pytest.raises(DataUnavailableError, match="No valid biomass pixels"):
            await BiomassService(backend).estimate_for_date(square_geometry, date(2024, 1, 1))


# ============================================================
# Satellite Service Tests
# ============================================================

class TestSatelliteService:
    """Tests for multi-sensor statistics over a fixed range."""

    @pytest.mark.asyncio
    async def test_statistics_without_lidar(self, biomass_service_catalog, square_geometry):
        service = SatelliteService(biomass_service_catalog)

        report = await service.get_statistics(square_geometry, date(2020, 1, 1), date(2020, 2, 1))

        assert report.sentinel2_images == 1
        assert report.sentinel1_images == 1
        assert not report.gedi_available
        assert set(report.statistics) == {"NDVI", "EVI", "LAI", "VV", "VH", "RVI"}
        assert report.statistics["VV"].mean == 0.1
        assert report.warnings == ("GEDI canopy height data not available for this region/time period",)

    @pytest.mark.asyncio
    async def test_statistics_with_lidar(
        self, biomass_service_catalog, analysis_grid, make_gedi_scene, square_geometry
    ):
        biomass_service_catalog.add_scene(make_gedi_scene(analysis_grid, date(2020, 1, 15), rh98=18.0))

        report = await SatelliteService(biomass_service_catalog).get_statistics(
            square_geometry, date(2020, 1, 1), date(2020, 2, 1)
        )

        assert report.gedi_available
        assert report.statistics[CANOPY_HEIGHT_BAND].mean == 18.0
        assert report.warnings == ()

    @pytest.mark.asyncio
    async def test_empty_range_warns_for_every_sensor(self, empty_service, square_geometry):
        report = await SatelliteService(empty_service).get_statistics(
            square_geometry, date(2020, 1, 1), date(2020, 2, 1)
        )

        assert len(report.warnings) == 3
        assert "No Sentinel-2 imagery found in date range" in report.warnings
        assert report.statistics["NDVI"].mean is None

    @pytest.mark.asyncio
    async def test_lidar_failure_is_a_warning(self, square_geometry):
        report = await SatelliteService(LidarOutageService()).get_statistics(
            square_geometry, date(2020, 1, 1), date(2020, 2, 1)
        )
        assert not report.gedi_available

    @pytest.mark.asyncio
    async def test_range_must_be_ordered(self, empty_service, square_geometry):
        with pytest.raises(ValidationError, match="endDate"):
            await SatelliteService(empty_service).get_statistics(
                square_geometry, date(2020, 2, 1), date(2020, 1, 1)
            )


# ============================================================
# Classification Service Tests
# ============================================================

class TestClassificationService:
    """Tests for Dynamic World and WorldCover classification."""

    @pytest.mark.asyncio
    async def test_dynamic_world_with_dates(self, analysis_grid, make_land_cover_scene, square_geometry):
        backend = InMemoryRasterService(scenes=[
            make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 5, 25), west=1, east=4),
        ])

        report = await ClassificationService(backend).classify(
            square_geometry, start_date=date(2024, 1, 1), end_date=date(2024, 6, 1)
        )

        assert report.ai_powered
        assert report.confidence is not None
        assert report.classification.source == "Dynamic World AI Classifier"
        assert report.classification.temporal_window == "1 month"
        assert report.classification.classification_date == date(2024, 6, 1)
        assert {row.class_name for row in report.area_statistics} == {"Trees", "Crops"}

    @pytest.mark.asyncio
    async def test_dynamic_world_lookback_in_months(
        self, analysis_grid, make_land_cover_scene, square_geometry
    ):
        backend = InMemoryRasterService(scenes=[
            make_land_cover_scene(analysis_grid, Sensor.DYNAMIC_WORLD, date(2024, 3, 1), west=1, east=1),
        ])

        report = await ClassificationService(backend).classify(
            square_geometry, start_date=date(2024, 1, 1), end_date=date(2024, 6, 1)
        )

        assert report.classification.temporal_window == "4 months"
        assert report.classification.date_range.end == date(2024, 6, 1)
        assert len(report.area_statistics) == 1

    @pytest.mark.asyncio
    async def test_dynamic_world_unavailable(self, empty_service, square_geometry):
        with pytest.raises(DataUnavailableError, match="No Dynamic World data available") as exc_info:
            await ClassificationService(empty_service).classify(
                square_geometry, start_date=date(2024, 1, 1), end_date=date(2024, 6, 1)
            )
        assert exc_info.value.bound_weeks == 48
        assert "past 48 weeks" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unavailable_message_follows_policy(self, empty_service, square_geometry):
        service = ClassificationService(
            empty_service,
            search_policy=SearchPolicy.for_months(6, step_weeks=WEEKS_PER_MONTH, symmetric=False),
        )

        with pytest.raises(DataUnavailableError, match="past 24 weeks"):
            await service.classify(square_geometry, start_date=date(2024, 1, 1), end_date=date(2024, 6, 1))

    @pytest.mark.asyncio
    async def test_worldcover_without_dates(self, analysis_grid, make_land_cover_scene, square_geometry):
        backend = InMemoryRasterService(scenes=[
            make_land_cover_scene(analysis_grid, Sensor.WORLDCOVER, date(2021, 1, 1), west=10, east=80),
        ])

        report = await ClassificationService(backend).classify(square_geometry, year=2021)

        assert not report.ai_powered
        assert report.confidence is None
        assert report.classification.year == 2021
        assert [row.class_value for row in report.area_statistics] in ([10, 80], [80, 10])
        assert report.area_statistics[0].area_hectares >= report.area_statistics[1].area_hectares

    @pytest.mark.asyncio
    async def test_dynamic_world_flag_off_uses_worldcover(self, empty_service, square_geometry):
        report = await ClassificationService(empty_service).classify(
            square_geometry,
            use_dynamic_world=False,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 6, 1),
        )

        assert report.classification.source == "ESA WorldCover"
        assert report.area_statistics == []
