# src/cache/models.py
"""Cache domain models: CacheNamespace, CacheEntry, CacheStats."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

CacheNamespace = Literal["scrape-result", "vision-text", "vision-color", "vision-caption"]

NAMESPACES: tuple[str, ...] = ("scrape-result", "vision-text", "vision-color", "vision-caption")


class CacheEntry(BaseModel):
    """A previously computed result, stored under its content-addressed key."""

    key: str
    namespace: CacheNamespace
    payload: Any
    source: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class CacheStats:
    """In-process counters for one ResultCache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    writes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Percentage of lookups served from cache (0-100)."""
        total = self.hits + self.misses
        return round(100.0 * self.hits / total, 1) if total else 0.0
