# tests/conftest.py
"""Shared test fixtures for unit and integration tests.

Provides an in-memory store, a controllable clock, settings isolated from
any local .env, pre-wired config provider / cache / limiter, and scripted
fakes for the vision, caption, scraping and image-store collaborators.
No external services: durable backends are covered with sqlite only.
"""

from __future__ import annotations

from typing import Any

import pytest

from sitelift.cache.result_cache import ResultCache
from sitelift.config.provider import ScalingConfigProvider
from sitelift.config.settings import Settings
from sitelift.ratelimit.limiter import RateLimiter
from sitelift.scraping.base_scraper import BasePageScraper, ScrapedImage, ScrapePayload
from sitelift.storage.base_image_store import BaseImageStore, StoredImage
from sitelift.store.base_store import BaseKVStore, Mutation, R
from sitelift.store.memory_store import MemoryKVStore
from sitelift.vision.base_provider import BaseCaptionProvider, BaseVisionProvider
from sitelift.vision.models import RawColor, TextAnnotation


class FakeClock:
    """Callable clock (epoch seconds) that tests advance by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenStore(BaseKVStore):
    """Store whose every operation fails, for fail-open paths."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or ConnectionError("store unreachable")
        self.calls = 0

    def _fail(self) -> Any:
        self.calls += 1
        raise self.error

    async def get(self, key: str) -> dict[str, Any] | None:
        return self._fail()

    async def set(self, key: str, value: dict[str, Any], expires_at: float | None = None) -> None:
        self._fail()

    async def delete(self, key: str) -> None:
        self._fail()

    async def transact(self, key: str, fn: Mutation[R]) -> R:
        return self._fail()

    async def scan(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        return self._fail()

    async def purge_expired(self, now: float) -> int:
        return self._fail()


# === FIXTURES ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def broken_store() -> BrokenStore:
    return BrokenStore()


@pytest.fixture
def settings() -> Settings:
    """Default settings, never reading a local .env file."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def config_provider(store: MemoryKVStore, clock: FakeClock) -> ScalingConfigProvider:
    return ScalingConfigProvider(store, ttl_s=60.0, clock=clock)


@pytest.fixture
def result_cache(
    store: MemoryKVStore,
    config_provider: ScalingConfigProvider,
    settings: Settings,
    clock: FakeClock,
) -> ResultCache:
    return ResultCache(store, config_provider, ttls=settings.cache_ttls, clock=clock)


@pytest.fixture
def limiter(
    store: MemoryKVStore, config_provider: ScalingConfigProvider, clock: FakeClock,
) -> RateLimiter:
    return RateLimiter(store, config_provider, clock=clock)


# === Fake collaborators ===


class FakeVisionProvider(BaseVisionProvider):
    """Scripted vision provider. Values in ``texts``/``colors`` may be exceptions."""

    def __init__(
        self,
        texts: dict[str, Any] | None = None,
        colors: dict[str, Any] | None = None,
    ) -> None:
        self.texts = texts or {}
        self.colors = colors or {}
        self.text_calls: list[str] = []
        self.color_calls: list[str] = []

    async def detect_text(self, image_url: str) -> list[TextAnnotation]:
        self.text_calls.append(image_url)
        value = self.texts.get(image_url, [])
        if isinstance(value, Exception):
            raise value
        return [TextAnnotation(text=t) for t in value]

    async def dominant_colors(self, image_url: str) -> list[RawColor]:
        self.color_calls.append(image_url)
        value = self.colors.get(image_url, [])
        if isinstance(value, Exception):
            raise value
        return [RawColor(red=r, green=g, blue=b, score=0.5, pixel_fraction=0.1) for r, g, b in value]

    @property
    def provider_name(self) -> str:
        return "fake-vision"


class FakeCaptionProvider(BaseCaptionProvider):
    def __init__(self, captions: dict[str, Any] | None = None) -> None:
        self.captions = captions or {}
        self.calls: list[str] = []

    async def caption(self, image_url: str) -> str:
        self.calls.append(image_url)
        value = self.captions.get(image_url, "")
        if isinstance(value, Exception):
            raise value
        return value

    @property
    def provider_name(self) -> str:
        return "fake-caption"


class FakeScraper(BasePageScraper):
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[str] = []

    async def scrape(self, url: str) -> ScrapePayload:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return ScrapePayload(
            url=url,
            title="Joe's Pizza",
            images=[ScrapedImage(url=f"{url}/logo.png", role="logo")],
            text_blocks=["Family owned since 1985"],
            colors=["#C0392B"],
        )


class FakeImageStore(BaseImageStore):
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def store(self, image_url: str) -> StoredImage:
        self.calls.append(image_url)
        return StoredImage(
            source_url=image_url,
            public_url=f"https://cdn.example/{len(self.calls)}.jpg",
            size_bytes=1024,
        )


@pytest.fixture
def fast_settings() -> Settings:
    """Settings without inter-chunk pauses or retry backoff."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        vision_batch_delay_s=0.0,
        caption_batch_delay_s=0.0,
        retry_base_delay_s=0.001,
        retry_max_delay_s=0.002,
    )


@pytest.fixture
def make_vision_provider():
    return FakeVisionProvider


@pytest.fixture
def make_caption_provider():
    return FakeCaptionProvider


@pytest.fixture
def scraper() -> FakeScraper:
    return FakeScraper()


@pytest.fixture
def image_store() -> FakeImageStore:
    return FakeImageStore()
