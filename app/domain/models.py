"""
Domain models for the biomass and land-cover pipeline.

These models represent the core domain entities and should be independent
of any infrastructure concerns (Earth Engine, HTTP, etc.). All of them are
created per request and never mutated after construction.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


class Sensor(str, Enum):
    """Image collections the pipeline reads from."""
    SENTINEL2 = "sentinel2"
    SENTINEL1 = "sentinel1"
    GEDI = "gedi"
    DYNAMIC_WORLD = "dynamic_world"
    WORLDCOVER = "worldcover"


class LandCoverSource(str, Enum):
    DYNAMIC_WORLD = "dynamic_world"
    WORLDCOVER = "worldcover"


@dataclass(frozen=True)
class Geometry:
    """
    A polygon as GeoJSON rings of [longitude, latitude] pairs.

    The first ring is the exterior; any further rings are holes.
    """
    coordinates: tuple[tuple[tuple[float, float], ...], ...]

    @classmethod
    def from_coordinates(cls, coordinates: list[list[list[float]]]) -> "Geometry":
        rings = tuple(
            tuple((float(lon), float(lat)) for lon, lat, *_ in ring)
            for ring in coordinates
        )
        return cls(coordinates=rings)

    @property
    def exterior(self) -> tuple[tuple[float, float], ...]:
        return self.coordinates[0]

    @property
    def holes(self) -> tuple[tuple[tuple[float, float], ...], ...]:
        return self.coordinates[1:]

    def to_geojson(self) -> dict:
        return {
            "type": "Polygon",
            "coordinates": [[list(point) for point in ring] for ring in self.coordinates],
        }


@dataclass(frozen=True)
class DateWindow:
    """Half-open date interval [start, end)."""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def __str__(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


@dataclass(frozen=True)
class WindowMatch:
    """A window located by the adaptive search."""
    target_date: date
    window: DateWindow
    steps: int
    weeks: int

    @property
    def months_used(self) -> int:
        # A search month is four weeks.
        return -(-self.weeks // 4)


@dataclass(frozen=True)
class BandStatistics:
    """Spatial statistics of one band over a region."""
    mean: Optional[float]
    min: Optional[float]
    max: Optional[float]
    std_dev: Optional[float]
    pixel_count: int = 0

    @classmethod
    def empty(cls) -> "BandStatistics":
        return cls(mean=None, min=None, max=None, std_dev=None, pixel_count=0)

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0 or self.mean is None


@dataclass(frozen=True)
class DataQuality:
    sentinel2_images: int
    sentinel1_images: int
    gedi_footprints: int
    temporal_range: str


@dataclass(frozen=True)
class DateResult:
    """Biomass estimate for one target date."""
    target_date: date
    window: DateWindow
    months_used: int
    agb: BandStatistics
    total_biomass: float
    area_ha: float
    agb_tile_url: str
    model_variant: str
    input_metrics: dict[str, Optional[BandStatistics]]
    data_quality: DataQuality
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ChangeResult:
    """Biomass change between two dates."""
    mean_agb_change: float
    percent_change: float
    total_biomass_change: float
    annual_agb_change: float
    duration_days: int
    duration_years: float
    status: str
    interpretation: str


@dataclass(frozen=True)
class BiomassChangeReport:
    start: DateResult
    end: DateResult
    change: ChangeResult
    search_weeks: int = 12
    """Half-width bound of the imagery search around each date"""


@dataclass(frozen=True)
class ClassArea:
    """Area covered by one land-cover class."""
    class_value: int
    class_name: str
    area_hectares: float
    area_square_meters: int


@dataclass(frozen=True)
class SensorStatisticsReport:
    """Per-band statistics of the multi-sensor stack over a date range."""
    window: DateWindow
    statistics: dict[str, BandStatistics]
    sentinel2_images: int
    sentinel1_images: int
    gedi_available: bool
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ClassificationInfo:
    """Description of the land-cover product used for a classification."""
    source: str
    model: str
    description: str
    classes: dict[int, str]
    year: Optional[int] = None
    classification_date: Optional[date] = None
    temporal_window: Optional[str] = None
    date_range: Optional[DateWindow] = None
    features: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LandCoverReport:
    """Land-cover classification of a region with per-class areas."""
    classification: ClassificationInfo
    area_statistics: list[ClassArea]
    image_url: str
    ai_powered: bool
    confidence: Optional[dict[str, str]] = None
