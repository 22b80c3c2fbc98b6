"""
Earth Engine dataset identifiers and related constants.

This module contains all remote collection IDs, property filters and
visualization parameters. Centralizing these values makes it easy to move
to newer dataset versions.
"""


# Earth Engine Datasets
class EarthEngineDatasets:
    """Earth Engine collection IDs."""

    # Optical
    SENTINEL2 = "COPERNICUS/S2_SR_HARMONIZED"

    # Radar
    SENTINEL1 = "COPERNICUS/S1_GRD"

    # Lidar
    GEDI = "LARSE/GEDI/GEDI02_A_002_MONTHLY"

    # Land cover
    DYNAMIC_WORLD = "GOOGLE/DYNAMICWORLD/V1"
    WORLDCOVER_V100 = "ESA/WorldCover/v100"
    WORLDCOVER_V200 = "ESA/WorldCover/v200"

    # Last map year published in WorldCover v100
    WORLDCOVER_V100_LAST_YEAR = 2020

    @classmethod
    def world_cover_for_year(cls, year: int) -> str:
        """
        Get the WorldCover release for a map year.

        Args:
            year: Requested map year

        Returns:
            v100 (2020 map) for years up to 2020, v200 (2021 map) afterwards
        """
        if year <= cls.WORLDCOVER_V100_LAST_YEAR:
            return cls.WORLDCOVER_V100
        return cls.WORLDCOVER_V200


# Collection property names and filter values
class CollectionFilters:
    """Image-collection metadata filters."""

    CLOUD_COVER_PROPERTY = "CLOUDY_PIXEL_PERCENTAGE"

    POLARISATION_PROPERTY = "transmitterReceiverPolarisation"
    INSTRUMENT_MODE_PROPERTY = "instrumentMode"
    ORBIT_PASS_PROPERTY = "orbitProperties_pass"

    INSTRUMENT_MODE = "IW"
    ORBIT_PASS = "DESCENDING"

    DYNAMIC_WORLD_LABEL_BAND = "label"
    WORLDCOVER_MAP_BAND = "Map"


# Visualization parameters
class VisualizationParams:
    """Tile rendering parameters."""

    AGB = {
        "min": 0,
        "max": 300,
        "palette": ["yellow", "green", "darkgreen"],
    }
