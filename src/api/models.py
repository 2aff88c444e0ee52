# src/api/models.py
"""API-level models: GuardedResponse, ImageBatchReport."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sitelift.ratelimit.models import RateLimitResult
from sitelift.vision.models import VisionAnalysis


class GuardedResponse(BaseModel):
    """Either a usable result or a rate-limit signal.

    ``value`` is None exactly when the request was rate limited.
    """

    value: Any = None
    from_cache: bool = False
    rate_limit: RateLimitResult

    @property
    def rate_limited(self) -> bool:
        return not self.rate_limit.allowed

    @property
    def retry_after(self) -> int | None:
        return self.rate_limit.retry_after


class ImageBatchReport(BaseModel):
    """Result of analyzing a set of images for one page."""

    analyses: list[VisionAnalysis] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def accent_colors(self) -> list[str]:
        """Accent colors found, in analysis order."""
        return [
            a.color_extraction.accent_color
            for a in self.analyses
            if a.color_extraction is not None and a.color_extraction.accent_color
        ]
