"""
Domain error types.

Each error maps to one failure kind surfaced by the API:

- ConfigurationError: the analytics platform cannot be reached because
  credentials are missing or rejected.
- ValidationError: the request is missing fields or carries invalid values.
- DataUnavailableError: the adaptive window search exhausted its bound.
"""
from datetime import date


class AnalyticsError(Exception):
    """Base class for errors raised by the analytics pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AnalyticsError):
    """Credentials or settings required by the analytics platform are missing."""
    pass


class ValidationError(AnalyticsError, ValueError):
    """A request is missing required fields or has invalid values."""
    pass


class DataUnavailableError(AnalyticsError):
    """No usable imagery was found for a target date within the search bound."""

    def __init__(
        self,
        message: str,
        target_date: date | None = None,
        bound_weeks: int | None = None,
    ):
        super().__init__(message)
        self.target_date = target_date
        self.bound_weeks = bound_weeks
