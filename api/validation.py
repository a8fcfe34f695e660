"""
Query parameter validation for the forecast endpoints.
"""
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple

from forecast.dates import FORECAST_DAYS, today_in_reference_tz, today_str
from forecast.errors import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

INVALID_COORDINATES = "Invalid coordinates"
INVALID_DATE_FORMAT = "Invalid date format. Use YYYY-MM-DD"
DATE_OUT_OF_RANGE = "Date must be between today and 16 days from today"


def parse_coordinates(
    lat: Optional[str], lon: Optional[str], default_lat: float, default_lon: float
) -> Tuple[float, float]:
    """Parse lat/lon query values, falling back to the defaults when absent."""
    try:
        lat_value = default_lat if lat in (None, "") else float(lat)
        lon_value = default_lon if lon in (None, "") else float(lon)
    except ValueError:
        raise ValidationError(INVALID_COORDINATES)

    # NaN fails both comparisons and is rejected here too
    if not (-90 <= lat_value <= 90 and -180 <= lon_value <= 180):
        raise ValidationError(INVALID_COORDINATES)

    return lat_value, lon_value


def parse_date_format(date: Optional[str]) -> str:
    """Check the YYYY-MM-DD shape and calendar validity; default to today."""
    if date in (None, ""):
        return today_str()

    if not DATE_PATTERN.match(date):
        raise ValidationError(INVALID_DATE_FORMAT)
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(INVALID_DATE_FORMAT)

    return date


def parse_forecast_date(date: Optional[str]) -> str:
    """Validate format and the [today, today+16] forecast window."""
    date = parse_date_format(date)

    requested = datetime.strptime(date, "%Y-%m-%d").date()
    today = today_in_reference_tz()
    if not today <= requested <= today + timedelta(days=FORECAST_DAYS):
        raise ValidationError(DATE_OUT_OF_RANGE)

    return date


def parse_timestamp(timestamp: Optional[str]) -> int:
    """Client-held cache timestamp in epoch ms; missing or garbage means 0."""
    try:
        return int(float(timestamp))
    except (TypeError, ValueError, OverflowError):
        return 0
