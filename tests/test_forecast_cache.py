"""
Unit tests for the forecast cache store and sweeper.
"""
import asyncio
import threading
from unittest.mock import patch

import pytest

from forecast.cache import CacheEntry, CacheStore, CacheSweeper, key_date, make_key


class TestCacheKeys:
    def test_make_key_format(self):
        """Test cache key generation format."""
        key = make_key("hourly", 40.72, -74.36, "2025-10-20")
        assert key == "hourly:40.72,-74.36,2025-10-20"

    def test_make_key_precision(self):
        """Test coordinates are rounded to two decimals."""
        key = make_key("daily", 40.71612, -74.36241, "2025-10-20")
        assert key == "daily:40.72,-74.36,2025-10-20"

    def test_nearby_coordinates_share_key(self):
        """Test points within the same rounding cell produce one key."""
        key1 = make_key("hourly", 40.7161, -74.3624, "2025-10-20")
        key2 = make_key("hourly", 40.7162, -74.3626, "2025-10-20")
        assert key1 == key2

    def test_kind_and_date_separate_keys(self):
        """Test kind and date are part of the key."""
        hourly = make_key("hourly", 40.72, -74.36, "2025-10-20")
        daily = make_key("daily", 40.72, -74.36, "2025-10-20")
        next_day = make_key("hourly", 40.72, -74.36, "2025-10-21")

        assert len({hourly, daily, next_day}) == 3

    def test_key_date(self):
        """Test the date can be read back from a key."""
        assert key_date(make_key("daily", -33.87, 151.21, "2025-10-20")) == "2025-10-20"


class TestCacheStoreOperations:
    def setup_method(self):
        """Setup test fixtures."""
        self.store = CacheStore()
        self.key = make_key("hourly", 40.72, -74.36, "2025-10-20")
        self.test_data = {"labels": ["12:00 PM"], "uv": [5.2], "date": "2025-10-20"}

    def test_get_nonexistent_key(self):
        """Test getting data for non-existent key."""
        assert self.store.get(self.key) is None

    def test_set_and_get_data(self):
        """Test basic cache set and get operations."""
        self.store.set(self.key, self.test_data)

        entry = self.store.get(self.key)

        assert isinstance(entry, CacheEntry)
        assert entry.data == self.test_data
        assert entry.timestamp > 0

    @patch("time.time")
    def test_set_records_timestamp_in_milliseconds(self, mock_time):
        """Test the entry timestamp is epoch milliseconds."""
        mock_time.return_value = 1700000000.5

        entry = self.store.set(self.key, self.test_data)

        assert entry.timestamp == 1700000000500

    @patch("time.time")
    def test_overwrite_replaces_entry(self, mock_time):
        """Test a second set replaces data and timestamp."""
        mock_time.side_effect = [1000.0, 2000.0]
        self.store.set(self.key, self.test_data)

        new_data = {"labels": [], "uv": [], "date": "2025-10-20"}
        self.store.set(self.key, new_data)

        entry = self.store.get(self.key)
        assert entry.data == new_data
        assert entry.timestamp == 2000000
        assert len(self.store) == 1

    def test_delete(self):
        """Test deleting an entry."""
        self.store.set(self.key, self.test_data)

        assert self.store.delete(self.key) is True
        assert self.store.get(self.key) is None
        assert self.store.delete(self.key) is False

    def test_contains_and_len(self):
        """Test membership and size."""
        assert len(self.store) == 0
        self.store.set(self.key, self.test_data)

        assert self.key in self.store
        assert len(self.store) == 1

    def test_clear(self):
        """Test clearing the store."""
        self.store.set(self.key, self.test_data)
        self.store.clear()

        assert len(self.store) == 0


class TestCacheStoreSweep:
    def setup_method(self):
        """Setup test fixtures."""
        self.store = CacheStore()
        self.store.set(make_key("hourly", 40.72, -74.36, "2025-10-19"), {"date": "2025-10-19"})
        self.store.set(make_key("daily", 40.72, -74.36, "2025-10-19"), {"date": "2025-10-19"})
        self.store.set(make_key("hourly", 40.72, -74.36, "2025-10-20"), {"date": "2025-10-20"})
        self.store.set(make_key("daily", 51.51, -0.10, "2025-10-25"), {"date": "2025-10-25"})

    def test_sweep_removes_past_dates(self):
        """Test entries dated before today are removed."""
        removed = self.store.sweep(today="2025-10-20")

        assert removed == 2
        assert len(self.store) == 2
        assert make_key("hourly", 40.72, -74.36, "2025-10-19") not in self.store

    def test_sweep_keeps_today_and_future(self):
        """Test entries for today and later survive."""
        self.store.sweep(today="2025-10-20")

        assert make_key("hourly", 40.72, -74.36, "2025-10-20") in self.store
        assert make_key("daily", 51.51, -0.10, "2025-10-25") in self.store

    def test_sweep_is_idempotent(self):
        """Test sweeping twice leaves the store unchanged in size."""
        self.store.sweep(today="2025-10-20")
        size = len(self.store)

        removed = self.store.sweep(today="2025-10-20")

        assert removed == 0
        assert len(self.store) == size

    @patch("forecast.cache.today_str")
    def test_sweep_defaults_to_reference_today(self, mock_today):
        """Test sweep uses the New York calendar date when none is given."""
        mock_today.return_value = "2025-10-26"

        removed = self.store.sweep()

        assert removed == 4
        assert len(self.store) == 0


class TestCacheStoreThreadSafety:
    def test_concurrent_sets(self):
        """Test concurrent writers do not lose entries."""
        store = CacheStore()

        def writer(offset):
            for i in range(50):
                store.set(make_key("hourly", offset, i, "2025-10-20"), {"i": i})

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 8 * 50


class TestCacheSweeper:
    def test_start_runs_initial_sweep(self):
        """Test the sweeper sweeps immediately on start."""
        store = CacheStore()
        store.set(make_key("hourly", 40.72, -74.36, "2000-01-01"), {"date": "2000-01-01"})

        async def scenario():
            sweeper = CacheSweeper(store, interval_seconds=3600)
            sweeper.start()
            await asyncio.sleep(0.01)
            running = sweeper.running
            await sweeper.stop()
            return running, sweeper.running

        running_before, running_after = asyncio.run(scenario())

        assert running_before is True
        assert running_after is False
        assert len(store) == 0

    def test_start_twice_keeps_single_task(self):
        """Test the sweeper is not re-entrant."""
        store = CacheStore()

        async def scenario():
            sweeper = CacheSweeper(store, interval_seconds=3600)
            with patch.object(store, "sweep", wraps=store.sweep) as mock_sweep:
                sweeper.start()
                sweeper.start()
                await asyncio.sleep(0.01)
                await sweeper.stop()
                return mock_sweep.call_count

        assert asyncio.run(scenario()) == 1

    def test_sweeper_repeats_on_interval(self):
        """Test sweeps recur on the configured interval."""
        store = CacheStore()

        async def scenario():
            sweeper = CacheSweeper(store, interval_seconds=0.01)
            with patch.object(store, "sweep", return_value=0) as mock_sweep:
                sweeper.start()
                await asyncio.sleep(0.1)
                await sweeper.stop()
                return mock_sweep.call_count

        assert asyncio.run(scenario()) >= 2

    def test_sweep_error_does_not_stop_sweeper(self):
        """Test a failing sweep is logged and the loop continues."""
        store = CacheStore()

        async def scenario():
            sweeper = CacheSweeper(store, interval_seconds=0.01)
            with patch.object(store, "sweep", side_effect=RuntimeError("boom")) as mock_sweep:
                sweeper.start()
                await asyncio.sleep(0.1)
                running = sweeper.running
                await sweeper.stop()
                return running, mock_sweep.call_count

        running, calls = asyncio.run(scenario())

        assert running is True
        assert calls >= 2

    def test_stop_without_start(self):
        """Test stopping an idle sweeper is a no-op."""
        sweeper = CacheSweeper(CacheStore())
        asyncio.run(sweeper.stop())
        assert sweeper.running is False
