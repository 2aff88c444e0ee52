# tests/unit/cache/test_result_cache.py
"""Tests for cache/result_cache.py: TTL, eviction, kill switch, fail-open."""

from __future__ import annotations

import pytest

from sitelift.cache.fingerprint import storage_key
from sitelift.cache.result_cache import ResultCache
from sitelift.config.provider import ScalingConfigProvider

URL = "https://joes-pizza.example"
DAY = 24 * 3600


class TestGetPut:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, result_cache):
        assert await result_cache.get("scrape-result", URL) is None
        assert await result_cache.put("scrape-result", URL, {"title": "Joe's"}) is True
        assert await result_cache.get("scrape-result", URL) == {"title": "Joe's"}
        assert result_cache.stats.hits == 1
        assert result_cache.stats.misses == 1
        assert result_cache.stats.writes == 1

    @pytest.mark.asyncio
    async def test_canonical_input_shares_entry(self, result_cache):
        await result_cache.put("scrape-result", URL, {"v": 1})
        assert await result_cache.get("scrape-result", f"  {URL.upper()} ") == {"v": 1}

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, result_cache):
        await result_cache.put("vision-text", URL, {"full_text": "hi"})
        assert await result_cache.get("vision-color", URL) is None

    @pytest.mark.asyncio
    async def test_empty_payload_is_cached(self, result_cache):
        await result_cache.put("vision-text", URL, {"texts": [], "full_text": ""})
        assert await result_cache.get("vision-text", URL) == {"texts": [], "full_text": ""}

    @pytest.mark.asyncio
    async def test_lookup_returns_entry(self, result_cache, clock):
        await result_cache.put("vision-text", URL, {"x": 1})
        entry = await result_cache.lookup("vision-text", URL)
        assert entry.source == URL
        assert entry.expires_at == clock.now + DAY

    @pytest.mark.asyncio
    async def test_unknown_namespace(self, result_cache):
        with pytest.raises(ValueError, match="Unknown cache namespace"):
            await result_cache.get("blueprints", URL)


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_entry_is_miss_and_evicted(self, result_cache, store, clock):
        await result_cache.put("vision-text", URL, {"x": 1})
        clock.advance(DAY + 1)
        assert await result_cache.get("vision-text", URL) is None
        assert await store.get(storage_key("vision-text", URL)) is None
        assert result_cache.stats.evictions == 1

    @pytest.mark.asyncio
    async def test_entry_valid_until_ttl(self, result_cache, clock):
        await result_cache.put("vision-text", URL, {"x": 1})
        clock.advance(DAY - 1)
        assert await result_cache.get("vision-text", URL) == {"x": 1}

    @pytest.mark.asyncio
    async def test_corrupt_entry_evicted(self, result_cache, store):
        await store.set(storage_key("scrape-result", URL), {"garbage": True})
        assert await result_cache.get("scrape-result", URL) is None
        assert await store.get(storage_key("scrape-result", URL)) is None

    @pytest.mark.asyncio
    async def test_sweep(self, result_cache, clock):
        await result_cache.put("vision-text", URL, {"x": 1})
        clock.advance(DAY + 1)
        assert await result_cache.sweep() == 1


class TestTTL:
    @pytest.mark.asyncio
    async def test_default_scrape_ttl(self, result_cache, config_provider):
        config = await config_provider.get()
        assert result_cache.ttl_for("scrape-result", config) == 7 * DAY

    @pytest.mark.asyncio
    async def test_document_ttl_days_overrides_scrape(self, result_cache, config_provider, store):
        await store.set("config:scaling", {"cacheTTLDays": 2})
        config = await config_provider.get()
        assert result_cache.ttl_for("scrape-result", config) == 2 * DAY
        assert result_cache.ttl_for("vision-text", config) == DAY


class TestKillSwitch:
    @pytest.mark.asyncio
    async def test_disabled_bypasses_read_and_write(self, result_cache, store):
        await result_cache.put("scrape-result", URL, {"v": 1})
        await store.set("config:scaling", {"cacheEnabled": False})

        assert await result_cache.get("scrape-result", URL) is None
        assert await result_cache.put("scrape-result", URL, {"v": 2}) is False
        # Entry untouched while disabled, served again once re-enabled.
        await store.set("config:scaling", {"cacheEnabled": True})
        assert await result_cache.get("scrape-result", URL) == {"v": 1}

    @pytest.mark.asyncio
    async def test_namespace_disabled(self, result_cache, store):
        await store.set("config:scaling", {"cacheDisabledNamespaces": ["vision-text"]})
        assert await result_cache.put("vision-text", URL, {"v": 1}) is False
        assert await result_cache.put("vision-color", URL, {"v": 1}) is True


class TestFailOpen:
    @pytest.mark.asyncio
    async def test_store_failure_is_miss(self, broken_store, settings, clock):
        provider = ScalingConfigProvider(broken_store, clock=clock)
        cache = ResultCache(broken_store, provider, ttls=settings.cache_ttls, clock=clock)
        assert await cache.get("scrape-result", URL) is None
        assert cache.stats.errors == 1

    @pytest.mark.asyncio
    async def test_store_failure_on_write_returns_false(self, broken_store, settings, clock):
        provider = ScalingConfigProvider(broken_store, clock=clock)
        cache = ResultCache(broken_store, provider, ttls=settings.cache_ttls, clock=clock)
        assert await cache.put("scrape-result", URL, {"v": 1}) is False

    @pytest.mark.asyncio
    async def test_unserializable_payload_skipped(self, result_cache, store):
        class Opaque:
            pass

        assert await result_cache.put("scrape-result", URL, Opaque()) is False
        assert result_cache.stats.errors == 1
        assert result_cache.stats.writes == 0
        assert await store.get(storage_key("scrape-result", URL)) is None

    @pytest.mark.asyncio
    async def test_discard_never_raises(self, broken_store, settings, clock):
        provider = ScalingConfigProvider(broken_store, clock=clock)
        cache = ResultCache(broken_store, provider, ttls=settings.cache_ttls, clock=clock)
        await cache.discard("vision-text", URL, "stale schema")
        assert cache.stats.errors == 1
        assert cache.stats.evictions == 1


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_invalidate(self, result_cache):
        await result_cache.put("scrape-result", URL, {"v": 1})
        await result_cache.invalidate("scrape-result", URL)
        assert await result_cache.get("scrape-result", URL) is None

    @pytest.mark.asyncio
    async def test_purge_and_count(self, result_cache):
        await result_cache.put("vision-text", "https://a/1.png", {"v": 1})
        await result_cache.put("vision-text", "https://a/2.png", {"v": 2})
        await result_cache.put("vision-color", "https://a/1.png", {"v": 3})
        assert await result_cache.count("vision-text") == 2
        assert await result_cache.purge("vision-text") == 2
        assert await result_cache.count("vision-text") == 0
        assert await result_cache.count("vision-color") == 1

    @pytest.mark.asyncio
    async def test_discard_evicts_entry(self, result_cache):
        await result_cache.put("vision-color", URL, {"colors": "old"})
        await result_cache.discard("vision-color", URL, "stale schema")
        assert await result_cache.get("vision-color", URL) is None
        assert result_cache.stats.evictions == 1
