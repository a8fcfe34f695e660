"""
Runtime configuration read from environment variables.
"""
import os
from dataclasses import dataclass

from forecast.cache import SWEEP_INTERVAL_SECONDS
from forecast.provider import DEFAULT_FORECAST_URL


@dataclass
class Settings:
    log_level: str = "INFO"
    port: int = 3000
    default_lat: float = 40.7206
    default_lon: float = -74.3637
    upstream_url: str = DEFAULT_FORECAST_URL
    upstream_timeout: float = 15.0
    sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS
    background_refresh: bool = True
    static_dir: str = "public"
    cors_origins: str = "*"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 3000)),
            default_lat=float(os.getenv("DEFAULT_LAT", 40.7206)),
            default_lon=float(os.getenv("DEFAULT_LON", -74.3637)),
            upstream_url=os.getenv("UPSTREAM_URL", DEFAULT_FORECAST_URL),
            upstream_timeout=float(os.getenv("UPSTREAM_TIMEOUT", 15)),
            sweep_interval_seconds=float(
                os.getenv("SWEEP_INTERVAL_SECONDS", SWEEP_INTERVAL_SECONDS)
            ),
            background_refresh=os.getenv("BACKGROUND_REFRESH", "true").lower() == "true",
            static_dir=os.getenv("STATIC_DIR", "public"),
            cors_origins=os.getenv("CORS_ORIGINS", "*"),
        )

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
