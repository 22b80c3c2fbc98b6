"""
API response models using Pydantic.

JSON field names are camelCase (aliases); models are built from the
application services' domain results with the `from_*` constructors.
"""
from datetime import date
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from app.domain.models import (
    BandStatistics,
    BiomassChangeReport,
    ClassArea,
    DateResult,
    LandCoverReport,
    SensorStatisticsReport,
)
from app.infrastructure.api_constants import EarthEngineDatasets
from app.services.domain.agb_model import (
    AGB_REFERENCE,
    AGB_UNIT,
    COEFFICIENTS,
    FULL_MODEL,
)


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# ============================================================
# Shared
# ============================================================

class MetricRange(CamelModel):
    """Mean/min/max of one band over the region (null when no pixels)."""
    mean: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_statistics(cls, stats: Optional[BandStatistics]) -> Optional["MetricRange"]:
        if stats is None:
            return None
        return cls(mean=stats.mean, min=stats.min, max=stats.max)


class DateRange(CamelModel):
    start: date
    end: date


# ============================================================
# Biomass
# ============================================================

class AGBStatistics(CamelModel):
    mean_agb: float = Field(alias="meanAGB", description="Mean biomass density (t/ha)")
    min_agb: Optional[float] = Field(alias="minAGB")
    max_agb: Optional[float] = Field(alias="maxAGB")
    std_dev_agb: Optional[float] = Field(alias="stdDevAGB")
    total_biomass: float = Field(alias="totalBiomass", description="Mean density x area (t)")
    area_ha: float = Field(alias="areaHa", description="Geodesic polygon area (ha)")
    agb_raster_url: str = Field(alias="agbRasterUrl", description="{z}/{x}/{y} tile template")


class InputMetrics(CamelModel):
    ndvi: MetricRange
    evi: MetricRange
    lai: MetricRange
    vh: MetricRange
    vv: MetricRange
    rvi: MetricRange
    canopy_height: Optional[MetricRange] = Field(
        alias="canopyHeight",
        description="Null when no GEDI footprints were available"
    )


class AGBDataQuality(CamelModel):
    sentinel2_images: int = Field(alias="sentinel2Images")
    sentinel1_images: int = Field(alias="sentinel1Images")
    gedi_footprints: int = Field(alias="gediFootprints")
    temporal_range: str = Field(alias="temporalRange")


class DateResultModel(CamelModel):
    """Biomass estimate for one target date."""
    target_date: date = Field(alias="targetDate")
    actual_data_range: DateRange = Field(alias="actualDataRange")
    months_used: int = Field(alias="monthsUsed", description="Search extent in months of four weeks")
    model_variant: str = Field(alias="modelVariant", description="'full' or 'reduced'")
    agb: AGBStatistics
    input_metrics: InputMetrics = Field(alias="inputMetrics")
    data_quality: AGBDataQuality = Field(alias="dataQuality")
    warnings: List[str]

    @classmethod
    def from_result(cls, result: DateResult) -> "DateResultModel":
        metrics = result.input_metrics
        return cls(
            target_date=result.target_date,
            actual_data_range=DateRange(start=result.window.start, end=result.window.end),
            months_used=result.months_used,
            model_variant=result.model_variant,
            agb=AGBStatistics(
                mean_agb=result.agb.mean,
                min_agb=result.agb.min,
                max_agb=result.agb.max,
                std_dev_agb=result.agb.std_dev,
                total_biomass=result.total_biomass,
                area_ha=result.area_ha,
                agb_raster_url=result.agb_tile_url,
            ),
            input_metrics=InputMetrics(
                ndvi=MetricRange.from_statistics(metrics["NDVI"]),
                evi=MetricRange.from_statistics(metrics["EVI"]),
                lai=MetricRange.from_statistics(metrics["LAI"]),
                vh=MetricRange.from_statistics(metrics["VH"]),
                vv=MetricRange.from_statistics(metrics["VV"]),
                rvi=MetricRange.from_statistics(metrics["RVI"]),
                canopy_height=MetricRange.from_statistics(metrics.get("CanopyHeight")),
            ),
            data_quality=AGBDataQuality(
                sentinel2_images=result.data_quality.sentinel2_images,
                sentinel1_images=result.data_quality.sentinel1_images,
                gedi_footprints=result.data_quality.gedi_footprints,
                temporal_range=result.data_quality.temporal_range,
            ),
            warnings=list(result.warnings),
        )


class AGBChange(CamelModel):
    mean_agb_change: float = Field(alias="meanAGBChange")
    percent_change: float = Field(alias="percentChange")
    total_biomass_change: float = Field(alias="totalBiomassChange")
    annual_agb_change: float = Field(alias="annualAGBChange")
    status: str = Field(description="Increase, Decrease or No Change")
    interpretation: str


class TimePeriod(CamelModel):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    duration_days: int = Field(alias="durationDays")
    duration_years: float = Field(alias="durationYears")


class RegressionCoefficientsModel(CamelModel):
    intercept: float
    ndvi: float
    evi: float
    vh: float
    rvi: float
    canopy_height: float = Field(alias="canopyHeight")


class RegressionModelInfo(CamelModel):
    equation: str
    coefficients: RegressionCoefficientsModel
    unit: str
    reference: str


class DataSources(CamelModel):
    optical: str
    radar: str
    lidar: str


class AGBMetadata(CamelModel):
    resolution: str
    data_sources: DataSources = Field(alias="dataSources")
    notes: List[str]


def agb_notes(search_weeks: int) -> List[str]:
    return [
        "AGB calculated using multi-sensor fusion approach for two separate dates",
        f"Each date uses closest available satellite data (up to {search_weeks} weeks either side)",
        "NDVI, EVI, and LAI derived from Sentinel-2 optical imagery",
        "VV, VH backscatter and RVI from Sentinel-1 SAR",
        "Canopy height (RH98) from GEDI lidar footprints when available",
        "All datasets harmonized to 10m resolution",
        "Regression coefficients calibrated for tropical forests",
        "If GEDI data unavailable, AGB calculated without canopy height component",
        "Check warnings array for data availability notifications",
        "Results may vary for other biomes - recalibration recommended",
        "Change detection shows biomass dynamics over time",
    ]


class AGBData(CamelModel):
    start_date: DateResultModel = Field(alias="startDate")
    end_date: DateResultModel = Field(alias="endDate")
    agb_change: AGBChange = Field(alias="agbChange")
    time_period: TimePeriod = Field(alias="timePeriod")
    regression_model: RegressionModelInfo = Field(alias="regressionModel")
    metadata: AGBMetadata


class AGBResponse(CamelModel):
    """Response model for the biomass change endpoint."""
    success: bool = True
    data: AGBData

    @classmethod
    def from_report(cls, report: BiomassChangeReport) -> "AGBResponse":
        change = report.change
        return cls(
            data=AGBData(
                start_date=DateResultModel.from_result(report.start),
                end_date=DateResultModel.from_result(report.end),
                agb_change=AGBChange(
                    mean_agb_change=change.mean_agb_change,
                    percent_change=change.percent_change,
                    total_biomass_change=change.total_biomass_change,
                    annual_agb_change=change.annual_agb_change,
                    status=change.status,
                    interpretation=change.interpretation,
                ),
                time_period=TimePeriod(
                    start_date=report.start.target_date,
                    end_date=report.end.target_date,
                    duration_days=change.duration_days,
                    duration_years=change.duration_years,
                ),
                regression_model=RegressionModelInfo(
                    equation=FULL_MODEL.equation,
                    coefficients=RegressionCoefficientsModel(**COEFFICIENTS.as_dict()),
                    unit=AGB_UNIT,
                    reference=AGB_REFERENCE,
                ),
                metadata=AGBMetadata(
                    resolution="10m",
                    data_sources=DataSources(
                        optical=f"Sentinel-2 SR Harmonized ({EarthEngineDatasets.SENTINEL2})",
                        radar=f"Sentinel-1 GRD ({EarthEngineDatasets.SENTINEL1})",
                        lidar=f"GEDI L2A Monthly ({EarthEngineDatasets.GEDI})",
                    ),
                    notes=agb_notes(report.search_weeks),
                ),
            )
        )


# ============================================================
# Multi-sensor statistics
# ============================================================

class SatelliteDataQuality(CamelModel):
    sentinel2_images: int = Field(alias="sentinel2Images")
    sentinel1_images: int = Field(alias="sentinel1Images")
    gedi_available: bool = Field(alias="gediAvailable")


class SatelliteDateRange(CamelModel):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")


class SatelliteData(CamelModel):
    statistics: Dict[str, MetricRange] = Field(
        description="Per-band statistics keyed by band name (NDVI, EVI, LAI, VV, VH, RVI, CanopyHeight)"
    )
    data_quality: SatelliteDataQuality = Field(alias="dataQuality")
    date_range: SatelliteDateRange = Field(alias="dateRange")
    warnings: Optional[List[str]] = None


class SatelliteResponse(CamelModel):
    """Response model for the multi-sensor statistics endpoint."""
    success: bool = True
    data: SatelliteData

    @classmethod
    def from_report(cls, report: SensorStatisticsReport) -> "SatelliteResponse":
        return cls(
            data=SatelliteData(
                statistics={
                    band: MetricRange.from_statistics(stats)
                    for band, stats in report.statistics.items()
                },
                data_quality=SatelliteDataQuality(
                    sentinel2_images=report.sentinel2_images,
                    sentinel1_images=report.sentinel1_images,
                    gedi_available=report.gedi_available,
                ),
                date_range=SatelliteDateRange(
                    start_date=report.window.start,
                    end_date=report.window.end,
                ),
                warnings=list(report.warnings) or None,
            )
        )


# ============================================================
# Land-cover classification
# ============================================================

class AreaStatistic(CamelModel):
    class_value: int = Field(alias="class")
    class_name: str = Field(alias="className")
    area_hectares: float = Field(alias="areaHectares")
    area_square_meters: int = Field(alias="areaSquareMeters")

    @classmethod
    def from_class_area(cls, row: ClassArea) -> "AreaStatistic":
        return cls(
            class_value=row.class_value,
            class_name=row.class_name,
            area_hectares=row.area_hectares,
            area_square_meters=row.area_square_meters,
        )


class ClassificationDateRange(CamelModel):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")


class ClassificationMetadata(CamelModel):
    source: str
    model: str
    description: str
    classes: Dict[int, str]
    year: Optional[int] = None
    classification_date: Optional[date] = Field(default=None, alias="classificationDate")
    temporal_window: Optional[str] = Field(default=None, alias="temporalWindow")
    date_range: Optional[ClassificationDateRange] = Field(default=None, alias="dateRange")
    features: Optional[List[str]] = None


class Confidence(CamelModel):
    message: str
    method: str


class ClassificationData(CamelModel):
    classification: ClassificationMetadata
    area_statistics: List[AreaStatistic] = Field(
        alias="areaStatistics",
        description="Area per class, largest first"
    )
    image_url: str = Field(alias="imageUrl", description="{z}/{x}/{y} tile template")
    confidence: Optional[Confidence] = None
    ai_powered: bool = Field(alias="aiPowered")


class ClassificationResponse(CamelModel):
    """Response model for the land-cover classification endpoint."""
    success: bool = True
    data: ClassificationData

    @classmethod
    def from_report(cls, report: LandCoverReport) -> "ClassificationResponse":
        info = report.classification
        date_range = None
        if info.date_range is not None:
            date_range = ClassificationDateRange(
                start_date=info.date_range.start,
                end_date=info.date_range.end,
            )

        return cls(
            data=ClassificationData(
                classification=ClassificationMetadata(
                    source=info.source,
                    model=info.model,
                    description=info.description,
                    classes=info.classes,
                    year=info.year,
                    classification_date=info.classification_date,
                    temporal_window=info.temporal_window,
                    date_range=date_range,
                    features=list(info.features) or None,
                ),
                area_statistics=[AreaStatistic.from_class_area(row) for row in report.area_statistics],
                image_url=report.image_url,
                confidence=Confidence(**report.confidence) if report.confidence else None,
                ai_powered=report.ai_powered,
            )
        )
