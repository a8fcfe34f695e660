"""
Calendar and timezone helpers.

The server's reference calendar is America/New_York: "today" for validation
and cache expiry always means the New York calendar date.
"""
from datetime import date, datetime
from typing import Optional

from dateutil import tz

REFERENCE_TZ_NAME = "America/New_York"
REFERENCE_TZ = tz.gettz(REFERENCE_TZ_NAME)

FORECAST_DAYS = 16


def today_in_reference_tz(now: Optional[datetime] = None) -> date:
    """Return today's calendar date in America/New_York."""
    if now is None:
        now = datetime.now(tz.UTC)
    return now.astimezone(REFERENCE_TZ).date()


def today_str(now: Optional[datetime] = None) -> str:
    return today_in_reference_tz(now).isoformat()


def timezone_for(lon: float) -> str:
    """
    Pick the upstream timezone from longitude alone.

    Longitudes in [-130, -60] are treated as US and get America/New_York,
    everything else gets UTC.
    """
    if -130 <= lon <= -60:
        return REFERENCE_TZ_NAME
    return "UTC"


def is_today_or_future(date_str: str, now: Optional[datetime] = None) -> bool:
    return date_str >= today_str(now)
