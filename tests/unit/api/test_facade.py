# tests/unit/api/test_facade.py
"""Tests for api/facade.py: the guarded call path and public operations."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sitelift.api.facade import SiteLiftFacade
from sitelift.core.errors import UpstreamError
from sitelift.scraping.base_scraper import ScrapePayload
from sitelift.storage.base_image_store import StoredImage
from sitelift.store.memory_store import MemoryKVStore

URL = "https://joes-pizza.example"
IP = "203.0.113.7"


@pytest.fixture
def facade(fast_settings, clock, scraper, image_store, make_vision_provider):
    provider = make_vision_provider(colors={f"{URL}/logo.png": [(192, 57, 43)]})
    return SiteLiftFacade(
        fast_settings,
        MemoryKVStore(),
        scraper=scraper,
        vision_provider=provider,
        image_store=image_store,
        clock=clock,
    )


async def _limit(facade, endpoint, max_requests):
    await facade.config.update(
        rate_limits={endpoint: {"maxRequests": max_requests, "windowMs": 60000}},
    )


class TestGuardedCall:
    @pytest.mark.asyncio
    async def test_cache_miss_then_hit(self, facade):
        fn = AsyncMock(return_value={"answer": 42})
        first = await facade.guarded_call("researchBusiness", IP, fn, "scrape-result", "q")
        second = await facade.guarded_call("researchBusiness", IP, fn, "scrape-result", "q")
        assert first.value == second.value == {"answer": 42}
        assert (first.from_cache, second.from_cache) == (False, True)
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_force_refresh(self, facade):
        fn = AsyncMock(side_effect=[{"v": 1}, {"v": 2}])
        await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        fresh = await facade.guarded_call("x", IP, fn, "scrape-result", "q", force_refresh=True)
        assert fresh.value == {"v": 2}
        cached = await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        assert cached.value == {"v": 2}

    @pytest.mark.asyncio
    async def test_rate_limited_short_circuits(self, facade):
        await _limit(facade, "generateImage", 1)
        fn = AsyncMock(return_value={"url": "x"})
        await facade.guarded_call("generateImage", IP, fn)
        denied = await facade.guarded_call("generateImage", IP, fn)
        assert denied.rate_limited
        assert denied.value is None
        assert denied.retry_after == 60
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rate_limit_checked_before_cache(self, facade):
        await _limit(facade, "scrapeWebsite", 1)
        await facade.scrape_website(URL, IP)
        assert (await facade.scrape_website(URL, IP)).rate_limited

    @pytest.mark.asyncio
    async def test_upstream_error_propagates_after_retries(self, facade):
        error = UpstreamError("unavailable", 503)
        fn = AsyncMock(side_effect=error)
        with patch("sitelift.resilience.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(UpstreamError) as exc_info:
                await facade.guarded_call("generateBlueprint", IP, fn)
        assert exc_info.value is error
        assert fn.await_count == 4

    @pytest.mark.asyncio
    async def test_failed_call_not_cached(self, facade):
        fn = AsyncMock(side_effect=[UpstreamError("bad", 400), {"v": 1}])
        with pytest.raises(UpstreamError):
            await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        result = await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        assert result.value == {"v": 1} and not result.from_cache

    @pytest.mark.asyncio
    async def test_namespace_requires_input(self, facade):
        with pytest.raises(ValueError, match="together"):
            await facade.guarded_call("x", IP, AsyncMock(), namespace="scrape-result")

    @pytest.mark.asyncio
    async def test_unserializable_result_returned_uncached(self, facade):
        result = object()
        fn = AsyncMock(return_value=result)
        first = await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        assert first.value is result
        second = await facade.guarded_call("x", IP, fn, "scrape-result", "q")
        assert not second.from_cache
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_collaborator_selects_retry_preset(self, facade):
        fn = AsyncMock(side_effect=UpstreamError("overloaded", 503))
        with patch("sitelift.resilience.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(UpstreamError):
                await facade.guarded_call("generateImage", IP, fn, collaborator="image_generation")
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_collaborator_selects_deadline(self, facade):
        with patch("sitelift.api.facade.call_with_timeout", new_callable=AsyncMock) as timed:
            timed.return_value = {"v": 1}
            await facade.guarded_call("generateImage", IP, AsyncMock(), collaborator="image_generation")
            await facade.guarded_call("x", IP, AsyncMock(), collaborator="unknown")
        deadlines = [c.kwargs["timeout_s"] for c in timed.await_args_list]
        assert deadlines == [
            facade.settings.timeout_image_generation_s,
            facade.settings.timeout_default_s,
        ]


class TestScrapeWebsite:
    @pytest.mark.asyncio
    async def test_returns_payload_and_caches(self, facade, scraper):
        first = await facade.scrape_website(URL, IP)
        second = await facade.scrape_website(URL.upper(), IP)
        assert isinstance(first.value, ScrapePayload)
        assert first.value.title == "Joe's Pizza"
        assert second.from_cache and second.value == first.value
        assert scraper.calls == [URL]

    @pytest.mark.asyncio
    async def test_kill_switch(self, facade, scraper):
        await facade.config.update(cache_enabled=False)
        await facade.scrape_website(URL, IP)
        await facade.scrape_website(URL, IP)
        assert len(scraper.calls) == 2

    @pytest.mark.asyncio
    async def test_stale_cached_payload_is_refetched(self, facade, scraper):
        await facade.cache.put("scrape-result", URL, {"images": "not-a-list"})
        fresh = await facade.scrape_website(URL, IP)
        assert isinstance(fresh.value, ScrapePayload)
        assert not fresh.from_cache
        assert scraper.calls == [URL]
        assert (await facade.scrape_website(URL, IP)).from_cache

    @pytest.mark.parametrize("bad", ["", "ftp://x.example", "joes-pizza.example", "https://"])
    @pytest.mark.asyncio
    async def test_invalid_url(self, facade, bad):
        with pytest.raises(ValueError, match="Invalid URL"):
            await facade.scrape_website(bad, IP)

    @pytest.mark.asyncio
    async def test_no_scraper(self, fast_settings):
        facade = SiteLiftFacade(fast_settings, MemoryKVStore())
        with pytest.raises(RuntimeError, match="scraper"):
            await facade.scrape_website(URL, IP)


class TestAnalyzeImages:
    @pytest.mark.asyncio
    async def test_report(self, facade):
        response = await facade.analyze_images([f"{URL}/logo.png", f"{URL}/hero.jpg"], IP)
        report = response.value
        assert len(report.analyses) == 2
        assert report.failed == {}
        assert report.accent_colors == ["#C0392B"]

    @pytest.mark.asyncio
    async def test_rate_limited(self, facade):
        await _limit(facade, "analyzeImages", 1)
        await facade.analyze_images([f"{URL}/logo.png"], IP)
        assert (await facade.analyze_images([f"{URL}/logo.png"], IP)).rate_limited

    @pytest.mark.asyncio
    async def test_no_provider(self, fast_settings):
        facade = SiteLiftFacade(fast_settings, MemoryKVStore())
        with pytest.raises(RuntimeError, match="vision"):
            await facade.analyze_images([URL], IP)


class TestStoreImage:
    @pytest.mark.asyncio
    async def test_not_cached(self, facade, image_store):
        first = await facade.store_image(f"{URL}/logo.png", IP)
        second = await facade.store_image(f"{URL}/logo.png", IP)
        assert isinstance(first.value, StoredImage)
        assert first.value.public_url != second.value.public_url
        assert len(image_store.calls) == 2


class TestConstruction:
    @pytest.mark.asyncio
    async def test_from_settings(self, fast_settings):
        facade = SiteLiftFacade.from_settings(fast_settings)
        assert isinstance(facade.store, MemoryKVStore)
        assert facade.vision is None
        await facade.close()
