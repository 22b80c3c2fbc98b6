"""
Domain service: adaptive temporal window search.

Candidate windows are produced narrowest-first by a generator and consumed
by a first-match combinator, so the search stops at the first window that
holds usable imagery. The unit of growth is the week; a month of lookback
is four weeks.

Growth sequence for a policy with step `s` weeks, step k = 1..max_steps:

    symmetric:     [target - 7*k*s days, target + 7*k*s days)
    backward-only: [target - 7*k*s days, target + 1 day)
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, Iterable, Iterator, Optional
import logging

from app.domain.errors import DataUnavailableError
from app.domain.models import DateWindow, WindowMatch

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = 4


@dataclass(frozen=True)
class SearchPolicy:
    """How candidate windows grow around a target date."""

    step_weeks: int = 1
    """Weeks added to the window half-width (or lookback) per step"""

    max_steps: int = 12
    """Number of steps before the search gives up"""

    symmetric: bool = True
    """Grow on both sides of the target date, or backwards only"""

    @classmethod
    def for_months(cls, months: int, step_weeks: int = 1, symmetric: bool = True) -> "SearchPolicy":
        """Policy whose bound is `months` months of four weeks."""
        return cls(
            step_weeks=step_weeks,
            max_steps=max(1, (months * WEEKS_PER_MONTH) // step_weeks),
            symmetric=symmetric,
        )

    @property
    def bound_weeks(self) -> int:
        return self.step_weeks * self.max_steps


# +/- 1 week per step, up to 3 months
AGB_SEARCH_POLICY = SearchPolicy.for_months(3, step_weeks=1, symmetric=True)

# 1 month (4 weeks) back per step, up to 12 months
LAND_COVER_SEARCH_POLICY = SearchPolicy.for_months(12, step_weeks=WEEKS_PER_MONTH, symmetric=False)


def candidate_windows(target: date, policy: SearchPolicy) -> Iterator[WindowMatch]:
    """
    Yield candidate windows around a target date, narrowest first.

    Args:
        target: Date the imagery should be closest to
        policy: Growth policy

    Yields:
        WindowMatch for every step up to the policy bound
    """
    for step in range(1, policy.max_steps + 1):
        weeks = step * policy.step_weeks
        span = timedelta(weeks=weeks)
        end = target + span if policy.symmetric else target + timedelta(days=1)
        yield WindowMatch(
            target_date=target,
            window=DateWindow(start=target - span, end=end),
            steps=step,
            weeks=weeks,
        )


async def first_match(
    candidates: Iterable[WindowMatch],
    has_data: Callable[[DateWindow], Awaitable[bool]],
) -> Optional[WindowMatch]:
    """
    Return the first candidate whose window satisfies `has_data`.

    Candidates are checked sequentially; later (wider) candidates are never
    evaluated once one matches.
    """
    for candidate in candidates:
        if await has_data(candidate.window):
            return candidate
        logger.debug(f"No data in {candidate.window}, widening search")
    return None


async def find_data_window(
    target: date,
    policy: SearchPolicy,
    has_data: Callable[[DateWindow], Awaitable[bool]],
) -> WindowMatch:
    """
    Locate the narrowest window around `target` holding usable imagery.

    Args:
        target: Target date
        policy: Growth policy and bound
        has_data: Async predicate reporting whether a window has imagery

    Returns:
        The first matching WindowMatch

    Raises:
        DataUnavailableError: If no window up to the bound has imagery
    """
    match = await first_match(candidate_windows(target, policy), has_data)
    if match is None:
        raise DataUnavailableError(
            f"No satellite data found within {policy.bound_weeks} weeks of {target.isoformat()}",
            target_date=target,
            bound_weeks=policy.bound_weeks,
        )

    logger.info(
        f"Found data window {match.window} for {target.isoformat()} "
        f"after {match.steps} step(s) ({match.weeks} weeks)"
    )
    return match
