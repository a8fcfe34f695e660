"""
Forecast service: serves hourly and daily forecasts through the cache.

A cache hit is answered immediately. When the hit is for today or a future
date, a background task re-fetches the forecast and replaces the entry so the
next request sees fresher data. A miss fetches synchronously and stores the
result. Concurrent misses on the same key share a single upstream call.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

from fastapi.concurrency import run_in_threadpool

from utils.metrics import background_refresh_counter, cache_lookup_counter

from .cache import CacheEntry, CacheStore, make_key, now_ms
from .dates import is_today_or_future, timezone_for
from .provider import ForecastProvider, transform_daily, transform_hourly

logger = logging.getLogger(__name__)

HOURLY = "hourly"
DAILY = "daily"


@dataclass
class ForecastResult:
    payload: Dict[str, Any]
    cached: bool
    cache_age_ms: int
    last_updated: int


class ForecastService:
    def __init__(
        self,
        store: CacheStore,
        provider: ForecastProvider,
        background_refresh: bool = True,
    ):
        self.store = store
        self.provider = provider
        self.background_refresh = background_refresh
        self._inflight: Dict[str, asyncio.Task] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}

    async def get_hourly(self, lat: float, lon: float, date: str) -> ForecastResult:
        """Hourly series for the date at the given coordinates."""
        return await self._get(HOURLY, lat, lon, date)

    async def get_daily(self, lat: float, lon: float, date: str) -> ForecastResult:
        """Daily summary for the date at the given coordinates."""
        return await self._get(DAILY, lat, lon, date)

    def poll(
        self, kind: str, lat: float, lon: float, date: str, timestamp: int
    ) -> Dict[str, Any]:
        """Report whether the cached entry is newer than the client's timestamp."""
        entry = self.store.get(make_key(kind, lat, lon, date))
        if entry is None:
            return {"hasUpdate": False}
        return {"hasUpdate": entry.timestamp > timestamp, "timestamp": entry.timestamp}

    @property
    def pending_refreshes(self) -> int:
        return len(self._refreshing)

    async def wait_for_refreshes(self) -> None:
        tasks = list(self._refreshing.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background work still pending at shutdown."""
        tasks = list(self._refreshing.values()) + list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _get(self, kind: str, lat: float, lon: float, date: str) -> ForecastResult:
        timezone = timezone_for(lon)
        key = make_key(kind, lat, lon, date)

        entry = self.store.get(key)
        if entry is not None:
            cache_lookup_counter.labels(kind=kind, result="hit").inc()
            logger.debug(f"Cache hit for {key}", extra={"cache_key": key})
            if self.background_refresh and is_today_or_future(date):
                self._schedule_refresh(kind, key, lat, lon, date, timezone)
            return ForecastResult(
                payload=entry.data,
                cached=True,
                cache_age_ms=max(0, now_ms() - entry.timestamp),
                last_updated=entry.timestamp,
            )

        cache_lookup_counter.labels(kind=kind, result="miss").inc()
        logger.debug(f"Cache miss for {key}", extra={"cache_key": key})
        entry = await self._load(kind, key, lat, lon, date, timezone)
        return ForecastResult(
            payload=entry.data,
            cached=False,
            cache_age_ms=0,
            last_updated=entry.timestamp,
        )

    async def _load(
        self, kind: str, key: str, lat: float, lon: float, date: str, timezone: str
    ) -> CacheEntry:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._fetch_and_store(kind, key, lat, lon, date, timezone)
            )
            self._inflight[key] = task
            task.add_done_callback(self._forget(self._inflight, key))
        # Shielded so one cancelled request does not abort the shared fetch.
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self, kind: str, key: str, lat: float, lon: float, date: str, timezone: str
    ) -> CacheEntry:
        if kind == HOURLY:
            raw = await run_in_threadpool(self.provider.fetch_hourly, lat, lon, timezone)
            data = transform_hourly(raw, date)
        else:
            raw = await run_in_threadpool(self.provider.fetch_daily, lat, lon, timezone)
            data = transform_daily(raw, date)
        return self.store.set(key, data)

    def _schedule_refresh(
        self, kind: str, key: str, lat: float, lon: float, date: str, timezone: str
    ) -> None:
        if key in self._refreshing:
            return
        task = asyncio.get_running_loop().create_task(
            self._refresh(kind, key, lat, lon, date, timezone)
        )
        self._refreshing[key] = task
        task.add_done_callback(self._forget(self._refreshing, key))

    async def _refresh(
        self, kind: str, key: str, lat: float, lon: float, date: str, timezone: str
    ) -> None:
        try:
            await self._fetch_and_store(kind, key, lat, lon, date, timezone)
        except Exception as e:
            # The stale entry stays in place.
            background_refresh_counter.labels(kind=kind, outcome="error").inc()
            logger.warning(
                f"Background refresh failed for {key}: {e}",
                extra={"task": "background_refresh", "status": "error", "cache_key": key},
            )
            return

        background_refresh_counter.labels(kind=kind, outcome="success").inc()
        logger.info(
            f"Background refresh updated {key}",
            extra={"task": "background_refresh", "status": "success", "cache_key": key},
        )

    @staticmethod
    def _forget(tasks: Dict[str, asyncio.Task], key: str) -> Callable[[asyncio.Task], None]:
        def callback(task: asyncio.Task) -> None:
            if tasks.get(key) is task:
                del tasks[key]

        return callback
