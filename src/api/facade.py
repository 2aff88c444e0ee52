# src/api/facade.py
"""Public API facade: the composition root request handlers talk to.

Usage:
    facade = SiteLiftFacade.from_settings(settings, scraper=my_scraper)
    response = await facade.scrape_website(url, identity)
    if response.rate_limited:
        ...  # 429 with response.retry_after

Every expensive call follows the same path: rate limiter, then cache,
then the external call under timeout + retry, then cache write-back.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Sequence
from urllib.parse import urlparse

from pydantic import ValidationError

from sitelift.api.models import GuardedResponse, ImageBatchReport
from sitelift.cache.result_cache import ResultCache
from sitelift.config.provider import ScalingConfigProvider
from sitelift.config.settings import Settings
from sitelift.logging.context import clear_context, set_request_context
from sitelift.ratelimit.limiter import RateLimiter
from sitelift.ratelimit.models import RateLimitResult
from sitelift.resilience.retry import RETRY_POLICIES, RetryPolicy, with_retry
from sitelift.resilience.timeout import call_with_timeout, timeouts_from_settings
from sitelift.scraping.base_scraper import BasePageScraper, ScrapePayload
from sitelift.storage.base_image_store import BaseImageStore
from sitelift.store.base_store import BaseKVStore
from sitelift.store.store_factory import create_store
from sitelift.vision.base_provider import BaseCaptionProvider, BaseVisionProvider
from sitelift.vision.service import VisionService

logger = logging.getLogger(__name__)

EP_SCRAPE = "scrapeWebsite"
EP_ANALYZE_IMAGES = "analyzeImages"
EP_STORE_IMAGE = "storeImage"


class SiteLiftFacade:
    """Wires the store, config provider, cache, limiter and services."""

    def __init__(
        self,
        settings: Settings,
        store: BaseKVStore,
        scraper: BasePageScraper | None = None,
        vision_provider: BaseVisionProvider | None = None,
        caption_provider: BaseCaptionProvider | None = None,
        image_store: BaseImageStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.config = ScalingConfigProvider(
            store,
            key=settings.scaling_config_key,
            ttl_s=settings.scaling_config_ttl_s,
            clock=clock,
        )
        self.cache = ResultCache(
            store,
            self.config,
            ttls=settings.cache_ttls,
            flag_max_age_s=settings.cache_flag_max_age_s,
            clock=clock,
        )
        self.limiter = RateLimiter(store, self.config, clock=clock)
        self.retry_policy = RetryPolicy(
            max_retries=settings.retry_max_retries,
            base_delay_s=settings.retry_base_delay_s,
            max_delay_s=settings.retry_max_delay_s,
        )
        self.timeouts = timeouts_from_settings(settings)
        self.vision = (
            VisionService(
                vision_provider,
                cache=self.cache,
                captioner=caption_provider,
                settings=settings,
                retry_policy=self.retry_policy,
            )
            if vision_provider is not None
            else None
        )
        self._scraper = scraper
        self._image_store = image_store

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **collaborators: Any) -> SiteLiftFacade:
        """Build a facade with the store backend named in settings."""
        settings = settings or Settings()
        return cls(settings, create_store(settings), **collaborators)

    async def admit(self, identity: str, endpoint: str) -> RateLimitResult:
        """Rate-limit check for one request."""
        return await self.limiter.check(identity, endpoint)

    async def guarded_call(
        self,
        endpoint: str,
        identity: str,
        fn: Callable[[], Awaitable[Any]],
        namespace: str | None = None,
        raw_input: str | None = None,
        force_refresh: bool = False,
        timeout_s: float | None = None,
        policy: RetryPolicy | None = None,
        collaborator: str | None = None,
        decode: Callable[[Any], Any] | None = None,
    ) -> GuardedResponse:
        """Run ``fn`` behind rate limiting, caching, timeout and retry.

        ``fn`` should return a JSON-serializable value when ``namespace`` is
        given; anything else is returned but not cached. ``collaborator``
        names the external service (``generative``, ``scraping``, ...) and
        selects its deadline and retry preset unless ``timeout_s`` or
        ``policy`` is given. ``decode`` turns the stored value back into the
        caller's type; a cached value it rejects is discarded as a miss.
        Upstream errors propagate unchanged after retries.
        """
        if (namespace is None) != (raw_input is None):
            raise ValueError("namespace and raw_input must be given together")

        set_request_context(uuid.uuid4().hex[:12], endpoint, identity)
        try:
            decision = await self.admit(identity, endpoint)
            if not decision.allowed:
                return GuardedResponse(rate_limit=decision)

            if namespace is not None and not force_refresh:
                cached = await self.cache.get(namespace, raw_input)  # type: ignore[arg-type]
                if cached is not None:
                    try:
                        value = decode(cached) if decode is not None else cached
                    except (ValidationError, TypeError, AttributeError) as e:
                        await self.cache.discard(namespace, raw_input, e)  # type: ignore[arg-type]
                    else:
                        return GuardedResponse(value=value, from_cache=True, rate_limit=decision)

            deadline = timeout_s or self.timeouts.get(collaborator or "default", self.timeouts["default"])
            value = await with_retry(
                lambda: call_with_timeout(fn, timeout_s=deadline, operation=endpoint),
                policy=policy or RETRY_POLICIES.get(collaborator or "", self.retry_policy),
                operation=endpoint,
            )

            if namespace is not None:
                await self.cache.put(namespace, raw_input, value)  # type: ignore[arg-type]
            if decode is not None:
                value = decode(value)
            return GuardedResponse(value=value, rate_limit=decision)
        finally:
            clear_context()

    async def scrape_website(
        self, url: str, identity: str, force_refresh: bool = False,
    ) -> GuardedResponse:
        """Scrape a page, served from cache when possible.

        Raises:
            ValueError: If ``url`` is not an absolute http(s) URL.
            RuntimeError: If no scraper is configured.
        """
        _validate_url(url)
        if self._scraper is None:
            raise RuntimeError("No page scraper configured")
        scraper = self._scraper

        async def _scrape() -> dict[str, Any]:
            payload = await scraper.scrape(url)
            return payload.model_dump(mode="json")

        return await self.guarded_call(
            EP_SCRAPE,
            identity,
            _scrape,
            namespace="scrape-result",
            raw_input=url,
            force_refresh=force_refresh,
            collaborator="scraping",
            decode=ScrapePayload.model_validate,
        )

    async def analyze_images(
        self,
        image_urls: Sequence[str],
        identity: str,
        enable_captions: bool = False,
    ) -> GuardedResponse:
        """Batch vision analysis for a page's images.

        Per-image caching and retries happen inside VisionService.
        """
        if self.vision is None:
            raise RuntimeError("No vision provider configured")

        set_request_context(uuid.uuid4().hex[:12], EP_ANALYZE_IMAGES, identity)
        try:
            decision = await self.admit(identity, EP_ANALYZE_IMAGES)
            if not decision.allowed:
                return GuardedResponse(rate_limit=decision)

            outcome = await self.vision.batch_analyze_images(
                image_urls, enable_captions=enable_captions,
            )
            report = ImageBatchReport(
                analyses=outcome.results(),
                failed={f.item: str(f.error) for f in outcome.failed},
            )
            return GuardedResponse(value=report, rate_limit=decision)
        finally:
            clear_context()

    async def store_image(self, image_url: str, identity: str) -> GuardedResponse:
        """Copy a third-party image into durable hosting."""
        _validate_url(image_url)
        if self._image_store is None:
            raise RuntimeError("No image store configured")
        image_store = self._image_store

        return await self.guarded_call(
            EP_STORE_IMAGE,
            identity,
            lambda: image_store.store(image_url),
            collaborator="image_store",
        )

    async def close(self) -> None:
        await self.store.close()


def _validate_url(url: str) -> None:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL format: {url!r}")
