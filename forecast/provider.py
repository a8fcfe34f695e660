"""
Forecast data provider using the Open-Meteo API.
"""
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from utils.metrics import upstream_call_counter, upstream_call_duration

from .dates import FORECAST_DAYS
from .errors import DateNotFoundError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

HOURLY_FIELDS = [
    "uv_index",
    "uv_index_clear_sky",
    "precipitation_probability",
    "temperature_2m",
    "apparent_temperature",
    "cloud_cover",
    "relative_humidity_2m",
]

DAILY_FIELDS = [
    "temperature_2m_max",
    "temperature_2m_min",
    "uv_index_max",
    "precipitation_probability_max",
    "relative_humidity_2m_max",
]


class ForecastProvider:
    def __init__(self, forecast_url: str = DEFAULT_FORECAST_URL, timeout: float = 15):
        self.forecast_url = forecast_url
        self.timeout = timeout

    def fetch_hourly(self, lat: float, lon: float, timezone: str) -> Dict[str, Any]:
        """Fetch the raw hourly forecast for the coordinates."""
        return self._fetch("hourly", HOURLY_FIELDS, lat, lon, timezone)

    def fetch_daily(self, lat: float, lon: float, timezone: str) -> Dict[str, Any]:
        """Fetch the raw daily forecast for the coordinates."""
        return self._fetch("daily", DAILY_FIELDS, lat, lon, timezone)

    def build_url(
        self, kind: str, fields: List[str], lat: float, lon: float, timezone: str
    ) -> str:
        # Commas and slashes are left unescaped in the query string
        return (
            f"{self.forecast_url}?latitude={lat}&longitude={lon}"
            f"&{kind}={','.join(fields)}&timezone={timezone}"
            f"&temperature_unit=fahrenheit&forecast_days={FORECAST_DAYS}"
        )

    def _fetch(
        self, kind: str, fields: List[str], lat: float, lon: float, timezone: str
    ) -> Dict[str, Any]:
        url = self.build_url(kind, fields, lat, lon, timezone)
        start_time = time.time()

        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            upstream_call_counter.labels(kind=kind, outcome="network_error").inc()
            logger.error(f"Forecast API network error: {e}")
            raise UpstreamError(f"Failed to reach forecast API: {e}", kind="network")
        finally:
            upstream_call_duration.labels(kind=kind).observe(time.time() - start_time)

        if not response.ok:
            upstream_call_counter.labels(kind=kind, outcome="http_error").inc()
            logger.error(f"Forecast API responded with status: {response.status_code}")
            raise UpstreamError(
                f"Forecast API responded with status: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            upstream_call_counter.labels(kind=kind, outcome="invalid_response").inc()
            logger.error(f"Forecast API returned invalid JSON: {e}")
            raise UpstreamError(
                "Forecast API returned invalid JSON",
                status_code=response.status_code,
                kind="invalid_response",
            )

        upstream_call_counter.labels(kind=kind, outcome="success").inc()
        return data


def format_hour_label(timestamp: str) -> str:
    """Convert an ISO timestamp like 2025-06-01T13:00 to "1:00 PM"."""
    hour = int(timestamp.split("T")[1][:2])
    period = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:00 {period}"


def _safe_get(data_list: Optional[List], index: int, default: Any = None) -> Any:
    """Safely get item from list at index."""
    if data_list and 0 <= index < len(data_list):
        value = data_list[index]
        return value if value is not None else default
    return default


def transform_hourly(raw: Dict[str, Any], date: str) -> Dict[str, Any]:
    """
    Reduce a raw hourly forecast to the hours that fall on ``date``.

    Every returned list is aligned by index with ``labels``.
    """
    hourly = raw.get("hourly", {})
    times = hourly.get("time", [])
    indices = [i for i, ts in enumerate(times) if ts.split("T")[0] == date]

    def series(field: str) -> List[Any]:
        values = hourly.get(field)
        return [_safe_get(values, i) for i in indices]

    return {
        "labels": [format_hour_label(times[i]) for i in indices],
        "uv": series("uv_index"),
        "uvClearSky": series("uv_index_clear_sky"),
        "precipitation": series("precipitation_probability"),
        "temperature": series("temperature_2m"),
        "apparentTemperature": series("apparent_temperature"),
        "cloudCover": series("cloud_cover"),
        "humidity": series("relative_humidity_2m"),
        "date": date,
    }


def transform_daily(raw: Dict[str, Any], date: str) -> Dict[str, Any]:
    """Pick the single daily record for ``date``."""
    daily = raw.get("daily", {})
    dates = daily.get("time", [])

    try:
        index = dates.index(date)
    except ValueError:
        raise DateNotFoundError(date)

    return {
        "date": date,
        "tempMax": _safe_get(daily.get("temperature_2m_max"), index),
        "tempMin": _safe_get(daily.get("temperature_2m_min"), index),
        "uvMax": _safe_get(daily.get("uv_index_max"), index),
        "precipMax": _safe_get(daily.get("precipitation_probability_max"), index),
        "humidityMax": _safe_get(daily.get("relative_humidity_2m_max"), index),
    }
