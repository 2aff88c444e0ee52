# tests/unit/cache/test_models.py
"""Tests for cache/models.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sitelift.cache.models import CacheEntry, CacheStats


class TestCacheEntry:
    def _entry(self, **overrides):
        data = dict(
            key="abc", namespace="scrape-result", payload={"title": "Joe's Pizza"},
            source="https://joes.example", created_at=100.0, expires_at=200.0,
        )
        data.update(overrides)
        return CacheEntry(**data)

    def test_not_expired_at_boundary(self):
        assert self._entry().is_expired(200.0) is False

    def test_expired_after_boundary(self):
        assert self._entry().is_expired(200.1) is True

    def test_unknown_namespace_rejected(self):
        with pytest.raises(ValidationError):
            self._entry(namespace="blueprints")


class TestCacheStats:
    def test_hit_rate_empty(self):
        assert CacheStats().hit_rate == 0.0

    def test_hit_rate(self):
        assert CacheStats(hits=1, misses=2).hit_rate == 33.3
