"""
FastAPI application serving cached UV and weather forecasts.
"""
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from forecast.cache import CacheStore, CacheSweeper
from forecast.errors import DateNotFoundError, UpstreamError, ValidationError
from forecast.provider import ForecastProvider
from forecast.service import DAILY, HOURLY, ForecastResult, ForecastService
from utils.metrics import (
    get_content_type,
    get_metrics,
    health_check_counter,
    request_counter,
    request_duration,
    set_app_info,
)

from .config import Settings
from .logging_config import log_request, setup_logging
from .validation import (
    parse_coordinates,
    parse_date_format,
    parse_forecast_date,
    parse_timestamp,
)

VERSION = "1.0.0"

HOURLY_ERROR = "Failed to fetch UV data. Please try again later."
DAILY_ERROR = "Failed to fetch daily summary data. Please try again later."

# Setup logging
setup_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic models
class HealthResponse(BaseModel):
    ok: bool
    cacheEntries: int


class PollResponse(BaseModel):
    hasUpdate: bool
    timestamp: Optional[int] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan event handler."""
    # Startup
    logger.info("UV dashboard server starting up")
    settings: Settings = app.state.settings
    service: ForecastService = app.state.forecast_service

    logger.info(
        f"Configuration: UPSTREAM_URL={settings.upstream_url}, "
        f"BACKGROUND_REFRESH={settings.background_refresh}, "
        f"SWEEP_INTERVAL_SECONDS={settings.sweep_interval_seconds}"
    )

    sweeper = CacheSweeper(service.store, settings.sweep_interval_seconds)
    sweeper.start()
    app.state.sweeper = sweeper

    set_app_info(version=VERSION, environment=os.getenv("DEPLOYMENT_ENV", "local"))
    logger.info("UV dashboard server startup complete")

    yield

    # Shutdown
    logger.info("UV dashboard server shutting down")
    await sweeper.stop()
    await service.aclose()
    logger.info("UV dashboard server shutdown complete")


def build_service(settings: Settings) -> ForecastService:
    provider = ForecastProvider(
        forecast_url=settings.upstream_url, timeout=settings.upstream_timeout
    )
    return ForecastService(
        CacheStore(), provider, background_refresh=settings.background_refresh
    )


def create_app(
    settings: Optional[Settings] = None, service: Optional[ForecastService] = None
) -> FastAPI:
    """Build the application; tests inject their own service."""
    if settings is None:
        settings = Settings.from_env()

    app = FastAPI(
        title="UV Dashboard API",
        description="Cached proxy for UV index and weather forecasts",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.forecast_service = service or build_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(metrics_middleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.include_router(router)

    # Mounted last so the API routes take precedence over static files
    if os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
        logger.info(f"Serving static files from {settings.static_dir}")

    return app


async def metrics_middleware(request: Request, call_next):
    """
    Collect Prometheus metrics for HTTP requests.
    """
    # Skip metrics collection for the metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    method = request.method
    path = request.url.path

    response = await call_next(request)

    duration = time.time() - start_time

    # Static asset paths collapse into one label
    endpoint = path if path.startswith("/api/") or path == "/health" else "static"

    request_counter.labels(
        method=method, endpoint=endpoint, status_code=response.status_code
    ).inc()
    request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    return response


def format_timestamp(timestamp_ms: int) -> str:
    """Epoch milliseconds as an ISO-8601 UTC string."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def shape_response(result: ForecastResult) -> Dict[str, Any]:
    """Flatten a forecast result into the JSON body sent to the browser."""
    body = dict(result.payload)
    body["metadata"] = {
        "cached": result.cached,
        "cacheAge": result.cache_age_ms,
        "lastUpdated": format_timestamp(result.last_updated),
    }
    return body


async def serve_forecast(
    request: Request,
    kind: str,
    lat: Optional[str],
    lon: Optional[str],
    date: Optional[str],
    error_message: str,
) -> JSONResponse:
    settings: Settings = request.app.state.settings
    service: ForecastService = request.app.state.forecast_service
    request_id = str(uuid.uuid4())
    task = f"{kind}_forecast"
    start_time = time.time()

    try:
        lat_value, lon_value = parse_coordinates(
            lat, lon, settings.default_lat, settings.default_lon
        )
        date_value = parse_forecast_date(date)

        if kind == HOURLY:
            result = await service.get_hourly(lat_value, lon_value, date_value)
        else:
            result = await service.get_daily(lat_value, lon_value, date_value)

    except ValidationError as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log_request(logger, request_id, task, duration_ms, "rejected", str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except (UpstreamError, DateNotFoundError) as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log_request(logger, request_id, task, duration_ms, "error", f"Upstream failure: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_message)

    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log_request(logger, request_id, task, duration_ms, "error", f"Unexpected error: {e}")
        logger.exception(
            f"Unexpected error in {task}: {e}", extra={"request_id": request_id}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    cache_status = "hit" if result.cached else "miss"
    duration_ms = int((time.time() - start_time) * 1000)
    log_request(
        logger, request_id, task, duration_ms, "success", f"Served cache {cache_status}"
    )

    return JSONResponse(
        content=shape_response(result), headers={"X-Cache-Status": cache_status}
    )


@router.get("/api/uv-today")
async def uv_today(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    date: Optional[str] = None,
):
    """Hourly UV and weather series for one day."""
    return await serve_forecast(request, HOURLY, lat, lon, date, HOURLY_ERROR)


@router.get("/api/daily-summary")
async def daily_summary(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    date: Optional[str] = None,
):
    """Daily highs and lows for one day."""
    return await serve_forecast(request, DAILY, lat, lon, date, DAILY_ERROR)


@router.get("/api/uv-today/poll", response_model=PollResponse, response_model_exclude_none=True)
async def uv_today_poll(
    request: Request,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    date: Optional[str] = None,
    timestamp: Optional[str] = None,
):
    """
    Tell the client whether a background refresh replaced its cached copy.

    Only looks at the cache, never calls upstream.
    """
    settings: Settings = request.app.state.settings
    service: ForecastService = request.app.state.forecast_service

    try:
        lat_value, lon_value = parse_coordinates(
            lat, lon, settings.default_lat, settings.default_lon
        )
        date_value = parse_date_format(date)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return service.poll(HOURLY, lat_value, lon_value, date_value, parse_timestamp(timestamp))


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    health_check_counter.labels(status="ok").inc()
    return HealthResponse(ok=True, cacheEntries=len(request.app.state.forecast_service.store))


@router.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler for consistent error responses."""
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail}

    return JSONResponse(status_code=exc.status_code, content=content)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=app.state.settings.port,
        log_level="info",
        reload=False,
    )
