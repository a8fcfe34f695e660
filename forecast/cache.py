"""
In-process forecast cache keyed by series kind, rounded coordinates and date.

Entries carry no TTL. Callers see how old an entry is through its timestamp,
and the daily sweep removes entries whose date has already passed.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.metrics import cache_entries, cache_evictions_counter

from .dates import today_str

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 24 * 60 * 60


def now_ms() -> int:
    return int(time.time() * 1000)


def make_key(kind: str, lat: float, lon: float, date: str) -> str:
    """Generate cache key from parameters."""
    return f"{kind}:{lat:.2f},{lon:.2f},{date}"


def key_date(key: str) -> str:
    """Return the YYYY-MM-DD date embedded in a cache key."""
    return key.rsplit(",", 1)[-1]


@dataclass
class CacheEntry:
    data: Dict[str, Any]
    timestamp: int


class CacheStore:
    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._cache.get(key)

    def set(self, key: str, data: Dict[str, Any]) -> CacheEntry:
        """Store data under key with the current timestamp, replacing any entry."""
        entry = CacheEntry(data=data, timestamp=now_ms())
        with self._lock:
            self._cache[key] = entry
            cache_entries.set(len(self._cache))
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._cache.pop(key, None) is not None
            cache_entries.set(len(self._cache))
        return removed

    def sweep(self, today: Optional[str] = None) -> int:
        """
        Remove every entry whose date is strictly before today.

        Returns the number of removed entries.
        """
        if today is None:
            today = today_str()

        with self._lock:
            expired = [key for key in self._cache if key_date(key) < today]
            for key in expired:
                del self._cache[key]
            cache_entries.set(len(self._cache))

        if expired:
            cache_evictions_counter.inc(len(expired))
        logger.info(
            f"Cache sweep removed {len(expired)} entries, {len(self)} remaining",
            extra={"task": "cache_sweep", "status": "success"},
        )
        return len(expired)

    def clear(self) -> None:
        """Clear all cached data."""
        with self._lock:
            self._cache.clear()
            cache_entries.set(0)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache


class CacheSweeper:
    """Runs CacheStore.sweep once on start and then on a fixed interval."""

    def __init__(self, store: CacheStore, interval_seconds: float = SWEEP_INTERVAL_SECONDS):
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                self.store.sweep()
            except Exception as e:
                logger.exception(
                    f"Cache sweep failed: {e}",
                    extra={"task": "cache_sweep", "status": "error"},
                )
            await asyncio.sleep(self.interval_seconds)
