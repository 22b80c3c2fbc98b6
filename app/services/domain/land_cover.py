"""
Domain service: land-cover class tables and area summaries.
"""
from typing import Mapping

from app.domain.models import ClassArea

CLASSIFICATION_BAND = "classification"

# ESA WorldCover class definitions
WORLDCOVER_CLASSES = {
    10: "Tree cover",
    20: "Shrubland",
    30: "Grassland",
    40: "Cropland",
    50: "Built-up",
    60: "Bare / sparse vegetation",
    70: "Snow and ice",
    80: "Permanent water bodies",
    90: "Herbaceous wetland",
    95: "Mangroves",
    100: "Moss and lichen",
}

WORLDCOVER_COLORS = {
    10: "006400",
    20: "ffbb22",
    30: "ffff4c",
    40: "f096ff",
    50: "fa0000",
    60: "b4b4b4",
    70: "f0f0f0",
    80: "0064c8",
    90: "0096a0",
    95: "00cf75",
    100: "fae6a0",
}

# Dynamic World label definitions
DYNAMIC_WORLD_CLASSES = {
    0: "Water",
    1: "Trees",
    2: "Grass",
    3: "Flooded vegetation",
    4: "Crops",
    5: "Shrub and scrub",
    6: "Built",
    7: "Bare",
    8: "Snow and ice",
}

DYNAMIC_WORLD_PALETTE = [
    "419bdf", "397d49", "88b053", "7a87c6", "e49635",
    "dfc35a", "c4281b", "a59b8f", "b39fe1",
]

WORLDCOVER_VIS_PARAMS = {
    "min": 10,
    "max": 100,
    "palette": list(WORLDCOVER_COLORS.values()),
}

DYNAMIC_WORLD_VIS_PARAMS = {
    "min": 0,
    "max": 8,
    "palette": DYNAMIC_WORLD_PALETTE,
}


def summarize_class_areas(
    areas_m2: Mapping[int, float],
    class_names: Mapping[int, str],
) -> list[ClassArea]:
    """
    Convert per-class areas into presentation rows sorted by area, largest first.

    Args:
        areas_m2: Area in square meters per class value
        class_names: Names for known class values

    Returns:
        List of ClassArea
    """
    rows = [
        ClassArea(
            class_value=int(value),
            class_name=class_names.get(int(value), f"Class {int(value)}"),
            area_hectares=round(area / 10_000.0, 2),
            area_square_meters=int(round(area)),
        )
        for value, area in areas_m2.items()
    ]
    rows.sort(key=lambda row: row.area_square_meters, reverse=True)
    return rows
