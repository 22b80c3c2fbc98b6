"""
Domain service: biomass change between two dates.
"""
from app.domain.models import ChangeResult, DateResult

DAYS_PER_YEAR = 365.25

INCREASE = "Increase"
DECREASE = "Decrease"
NO_CHANGE = "No Change"

INTERPRETATIONS = {
    INCREASE: "Forest biomass has increased, indicating growth or afforestation",
    DECREASE: "Forest biomass has decreased, indicating degradation or deforestation",
    NO_CHANGE: "No significant change in forest biomass",
}


def direction(change: float) -> str:
    if change > 0:
        return INCREASE
    if change < 0:
        return DECREASE
    return NO_CHANGE


def analyze_change(start: DateResult, end: DateResult) -> ChangeResult:
    """
    Compare the biomass estimates of two dates.

    Percent change is 0 when the start mean is 0, and the annualized change
    is 0 when the period is not positive.

    Args:
        start: Result for the earlier date
        end: Result for the later date

    Returns:
        ChangeResult rounded to two decimals
    """
    change = end.agb.mean - start.agb.mean
    percent = (change / start.agb.mean) * 100 if start.agb.mean != 0 else 0.0

    days = (end.target_date - start.target_date).days
    years = days / DAYS_PER_YEAR
    annual = change / years if years > 0 else 0.0

    rounded_change = round(change, 2)
    status = direction(rounded_change)

    return ChangeResult(
        mean_agb_change=rounded_change,
        percent_change=round(percent, 2),
        total_biomass_change=round(end.total_biomass - start.total_biomass, 2),
        annual_agb_change=round(annual, 2),
        duration_days=days,
        duration_years=round(years, 2),
        status=status,
        interpretation=INTERPRETATIONS[status],
    )
