"""Tests for the TTL cache."""

import asyncio
from unittest.mock import patch

import pytest

from anomaly_engine.utils.cache import TTLCache


class TestTTLCache:
    def test_set_and_get(self):
        cache = TTLCache(default_ttl=60)
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert len(cache) == 1

    def test_expired_entry_is_dropped(self):
        cache = TTLCache(default_ttl=10)
        with patch("anomaly_engine.utils.cache.time.monotonic", return_value=100.0):
            cache.set("k", "v")
        with patch("anomaly_engine.utils.cache.time.monotonic", return_value=111.0):
            assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_replaces_value(self):
        cache = TTLCache()
        cache.set("k", 1)
        cache.set("k", 2)
        assert cache.get("k") == 2
        assert len(cache) == 1

    def test_eviction_when_full(self):
        cache = TTLCache(default_ttl=60, max_entries=2)
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=20)
        cache.set("c", 3, ttl=30)
        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_invalidate_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_get_or_compute_computes_once(self):
        cache = TTLCache()
        calls = []

        async def compute():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "value"

        results = await asyncio.gather(*(cache.get_or_compute("k", compute) for _ in range(5)))
        assert results == ["value"] * 5
        assert len(calls) == 1

    def test_recently_read_entry_survives_eviction(self):
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") == 1
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache

    @pytest.mark.asyncio
    async def test_failed_compute_caches_nothing(self):
        cache = TTLCache()

        async def fail():
            raise RuntimeError("boom")

        async def succeed():
            return "value"

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", fail)
        assert len(cache) == 0
        assert await cache.get_or_compute("k", succeed) == "value"
