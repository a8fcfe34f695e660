"""
Error types raised by the forecast cache/proxy core.
"""
from typing import Optional


class ForecastError(Exception):
    """Base class for forecast errors."""


class ValidationError(ForecastError):
    """Request parameters failed validation (client error)."""


class UpstreamError(ForecastError):
    """The forecast provider could not be reached or answered with an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        kind: str = "http",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind


class DateNotFoundError(ForecastError):
    """The requested date is not part of the upstream forecast horizon."""

    def __init__(self, date: str):
        super().__init__(f"Date {date} not found in forecast data")
        self.date = date
