# src/vision/service.py
"""Cached, retried vision analysis: OCR, dominant colors and captions.

Each provider call gets its own deadline, is wrapped by the retry
executor, and its result (empty results included) is cached under its
own namespace. Provider failures are reported in the result
(``success=False`` or a None caption) instead of being raised, so one bad
image never breaks a page analysis.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from sitelift.batch.models import BatchOutcome
from sitelift.batch.runner import run_batch
from sitelift.cache.result_cache import ResultCache
from sitelift.config.settings import Settings
from sitelift.resilience.retry import RetryPolicy, with_retry
from sitelift.resilience.timeout import call_with_timeout
from sitelift.vision.base_provider import BaseCaptionProvider, BaseVisionProvider
from sitelift.vision.colors import find_accent_color, rgb_to_hex
from sitelift.vision.models import (
    CaptionRecord,
    ColorExtractionResult,
    ColorSample,
    ImageRole,
    OcrFact,
    TextAnnotation,
    TextDetectionResult,
    VisionAnalysis,
)
from sitelift.vision.ocr_facts import extract_facts

logger = logging.getLogger(__name__)

NS_TEXT = "vision-text"
NS_COLOR = "vision-color"
NS_CAPTION = "vision-caption"

M = TypeVar("M", bound=BaseModel)


class VisionService:
    """Vision provider calls behind cache, timeout and retry."""

    def __init__(
        self,
        provider: BaseVisionProvider,
        cache: ResultCache | None = None,
        captioner: BaseCaptionProvider | None = None,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._captioner = captioner
        self._settings = settings or Settings(_env_file=None)  # type: ignore[call-arg]
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=self._settings.retry_max_retries,
            base_delay_s=self._settings.retry_base_delay_s,
            max_delay_s=self._settings.retry_max_delay_s,
        )

    async def detect_text(self, image_url: str, use_cache: bool = True) -> TextDetectionResult:
        """OCR an image. The first provider annotation is the full text."""
        cached = await self._cached(NS_TEXT, image_url, use_cache, TextDetectionResult)
        if cached is not None:
            return cached

        try:
            annotations: list[TextAnnotation] = await self._call(
                self._provider.detect_text, image_url, "text detection",
                self._settings.timeout_vision_s,
            )
        except Exception as e:
            logger.error("Text detection failed for %s: %s", image_url, e)
            return TextDetectionResult(success=False, error=str(e))

        if annotations:
            result = TextDetectionResult(
                texts=list(annotations[1:]),
                full_text=annotations[0].text.strip(),
            )
        else:
            result = TextDetectionResult()
        logger.info("Extracted %d text blocks from %s", len(result.texts), image_url)

        await self._store(NS_TEXT, image_url, result.model_dump(mode="json"), use_cache)
        return result

    async def extract_dominant_colors(
        self, image_url: str, use_cache: bool = True,
    ) -> ColorExtractionResult:
        """Top dominant colors plus the accent color among them."""
        cached = await self._cached(NS_COLOR, image_url, use_cache, ColorExtractionResult)
        if cached is not None:
            return cached

        try:
            raw_colors = await self._call(
                self._provider.dominant_colors, image_url, "image properties",
                self._settings.timeout_vision_s,
            )
        except Exception as e:
            logger.error("Color extraction failed for %s: %s", image_url, e)
            return ColorExtractionResult(success=False, error=str(e))

        samples = [
            ColorSample(
                hex=rgb_to_hex(c.red, c.green, c.blue),
                score=c.score,
                pixel_fraction=c.pixel_fraction,
            )
            for c in raw_colors[: self._settings.vision_max_colors]
        ]
        result = ColorExtractionResult(colors=samples, accent_color=find_accent_color(samples))
        logger.info(
            "Extracted %d colors from %s, accent: %s",
            len(samples), image_url, result.accent_color,
        )

        await self._store(NS_COLOR, image_url, result.model_dump(mode="json"), use_cache)
        return result

    async def generate_caption(self, image_url: str, use_cache: bool = True) -> str | None:
        """Short semantic caption, or None when unavailable."""
        if self._captioner is None:
            logger.debug("No caption provider configured")
            return None

        cached = await self._cached(NS_CAPTION, image_url, use_cache, CaptionRecord)
        if cached is not None:
            return cached.caption

        try:
            caption = await self._call(
                self._captioner.caption, image_url, "captioning",
                self._settings.timeout_generative_s,
            )
        except Exception as e:
            logger.warning("Caption generation failed for %s: %s", image_url, e)
            return None

        caption = (caption or "").strip()
        if not caption:
            return None
        await self._store(NS_CAPTION, image_url, CaptionRecord(caption=caption).model_dump(), use_cache)
        return caption

    async def analyze_image(self, image_url: str) -> VisionAnalysis:
        """Text detection and color extraction, run concurrently."""
        text, colors = await asyncio.gather(
            self.detect_text(image_url), self.extract_dominant_colors(image_url),
        )
        return VisionAnalysis(image_url=image_url, text_detection=text, color_extraction=colors)

    async def extract_image_facts(self, image_url: str, role: ImageRole) -> list[OcrFact]:
        """OCR an image and mine facts from the recognized text."""
        detection = await self.detect_text(image_url)
        if not detection.success:
            return []
        return extract_facts(detection.full_text, image_url, role)

    async def batch_analyze_images(
        self,
        image_urls: Sequence[str],
        enable_ocr: bool = True,
        enable_colors: bool = True,
        enable_captions: bool = False,
        max_images: int | None = None,
        concurrency: int | None = None,
    ) -> BatchOutcome[str, VisionAnalysis]:
        """Analyze up to ``max_images`` images with bounded concurrency."""
        limit = max_images or self._settings.vision_max_images
        urls = list(image_urls)[:limit]
        logger.info(
            "Batch analyzing %d images (max: %d, captions: %s)",
            len(urls), limit, enable_captions,
        )

        async def _analyze(url: str) -> VisionAnalysis:
            steps: dict[str, Awaitable[Any]] = {}
            if enable_ocr:
                steps["text_detection"] = self.detect_text(url)
            if enable_colors:
                steps["color_extraction"] = self.extract_dominant_colors(url)
            if enable_captions:
                steps["semantic_caption"] = self.generate_caption(url)
            values = await asyncio.gather(*steps.values())
            return VisionAnalysis(image_url=url, **dict(zip(steps, values)))

        return await run_batch(
            urls,
            _analyze,
            concurrency=concurrency or self._settings.vision_batch_concurrency,
            inter_chunk_delay_s=self._settings.vision_batch_delay_s,
            label="vision analysis",
        )

    async def batch_generate_captions(
        self,
        image_urls: Sequence[str],
        max_images: int | None = None,
        concurrency: int | None = None,
    ) -> dict[str, str]:
        """Captions for up to ``max_images`` images; failures are omitted."""
        urls = list(image_urls)[: max_images or self._settings.caption_max_images]
        outcome = await run_batch(
            urls,
            self.generate_caption,
            concurrency=concurrency or self._settings.caption_batch_concurrency,
            inter_chunk_delay_s=self._settings.caption_batch_delay_s,
            label="captioning",
        )
        return {s.item: s.result for s in outcome.succeeded if s.result}

    async def _call(
        self,
        fn: Callable[[str], Awaitable[Any]],
        image_url: str,
        operation: str,
        timeout_s: float,
    ) -> Any:
        return await with_retry(
            lambda: call_with_timeout(fn, image_url, timeout_s=timeout_s, operation=operation),
            policy=self._retry_policy,
            operation=operation,
        )

    async def _cached(
        self, namespace: str, image_url: str, use_cache: bool, model: type[M],
    ) -> M | None:
        """Cached result as ``model``; a payload that no longer fits is a miss."""
        if not use_cache or self._cache is None:
            return None
        payload = await self._cache.get(namespace, image_url)
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            await self._cache.discard(namespace, image_url, e)
            return None

    async def _store(self, namespace: str, image_url: str, payload: Any, use_cache: bool) -> None:
        if use_cache and self._cache is not None:
            await self._cache.put(namespace, image_url, payload)
