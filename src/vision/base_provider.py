# src/vision/base_provider.py
"""Abstract interfaces for vision and captioning providers.

Implementations wrap remote APIs. They raise on failure; retries,
timeouts and caching are applied by VisionService, not here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sitelift.vision.models import RawColor, TextAnnotation


class BaseVisionProvider(ABC):
    """OCR and image-properties provider."""

    @abstractmethod
    async def detect_text(self, image_url: str) -> list[TextAnnotation]:
        """Recognized text. The first annotation, if any, is the full text."""

    @abstractmethod
    async def dominant_colors(self, image_url: str) -> list[RawColor]:
        """Dominant colors, most prominent first."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier used in logs."""


class BaseCaptionProvider(ABC):
    """Generative captioning provider."""

    @abstractmethod
    async def caption(self, image_url: str) -> str:
        """Short semantic caption for the image."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier used in logs."""
