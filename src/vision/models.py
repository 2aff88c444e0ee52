# src/vision/models.py
"""Vision models: color samples, OCR facts and per-image analysis results."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ImageRole = Literal["logo", "flyer", "hero", "signage"]


class ColorSample(BaseModel):
    """One dominant color reported for an image."""

    model_config = ConfigDict(populate_by_name=True)

    hex: str
    score: float = 0.0
    pixel_fraction: float = Field(default=0.0, alias="pixelFraction")


class RawColor(BaseModel):
    """Color as returned by a vision provider, before hex conversion."""

    red: float | None = None
    green: float | None = None
    blue: float | None = None
    score: float = 0.0
    pixel_fraction: float = 0.0


class TextAnnotation(BaseModel):
    text: str
    confidence: float = 0.9


class TextDetectionResult(BaseModel):
    texts: list[TextAnnotation] = Field(default_factory=list)
    full_text: str = ""
    success: bool = True
    error: str | None = None


class ColorExtractionResult(BaseModel):
    colors: list[ColorSample] = Field(default_factory=list)
    accent_color: str | None = None
    success: bool = True
    error: str | None = None


class OcrFact(BaseModel):
    """A fact mined from recognized text."""

    source: ImageRole
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    image_url: str


class VisionAnalysis(BaseModel):
    """Combined analysis of one image."""

    image_url: str
    text_detection: TextDetectionResult | None = None
    color_extraction: ColorExtractionResult | None = None
    semantic_caption: str | None = None


class CaptionRecord(BaseModel):
    """Cached form of a semantic caption."""

    caption: str = Field(min_length=1)
