# src/scraping/base_scraper.py
"""Abstract page scraper and the payload it returns.

The headless-browser renderer lives outside this package. It is consumed
only through this interface; its payloads are cached and rate-limited by
the facade but never parsed here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class ScrapedImage(BaseModel):
    url: str
    alt: str = ""
    role: str = "other"
    width: int | None = None
    height: int | None = None


class ScrapePayload(BaseModel):
    """Raw assets extracted from one page."""

    url: str
    title: str = ""
    images: list[ScrapedImage] = Field(default_factory=list)
    text_blocks: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)


class BasePageScraper(ABC):
    """Renders a page and extracts its raw assets."""

    @abstractmethod
    async def scrape(self, url: str) -> ScrapePayload:
        """Scrape ``url``. Raises on navigation or rendering failure."""
