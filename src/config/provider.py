# src/config/provider.py
"""TTL-guarded access to the scaling config document.

One provider is built by the composition root and injected into the rate
limiter and the result cache. Reads are polled, never pushed: a snapshot
is reused until it is older than the caller's tolerated age.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sitelift.config.scaling import ScalingConfig, default_config, merge_with_defaults, validate_update
from sitelift.core.outcome import attempt
from sitelift.store.base_store import BaseKVStore

logger = logging.getLogger(__name__)


class ScalingConfigProvider:
    """Cached, fail-safe reader for the scaling config document."""

    def __init__(
        self,
        store: BaseKVStore,
        key: str = "config:scaling",
        ttl_s: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._key = key
        self._ttl_s = ttl_s
        self._clock = clock
        self._snapshot: ScalingConfig | None = None
        self._fetched_at = 0.0

    async def get(self, max_age_s: float | None = None) -> ScalingConfig:
        """Return the effective config.

        Args:
            max_age_s: Oldest snapshot the caller accepts. Defaults to the
                provider TTL; 0 forces a read.
        """
        max_age = self._ttl_s if max_age_s is None else max_age_s
        now = self._clock()
        if self._snapshot is not None and now - self._fetched_at < max_age:
            return self._snapshot

        outcome = await attempt(self._store.get(self._key))
        if not outcome.ok:
            fallback = self._snapshot or default_config()
            logger.warning(
                "Scaling config read failed, using %s: %s",
                "last good snapshot" if self._snapshot else "built-in defaults",
                outcome.error,
            )
            # Keep serving the fallback for a full TTL instead of hammering the store.
            self._snapshot = fallback
            self._fetched_at = now
            return fallback

        self._snapshot = merge_with_defaults(outcome.value)
        self._fetched_at = now
        return self._snapshot

    def invalidate(self) -> None:
        """Drop the snapshot so the next read goes to the store."""
        self._snapshot = None
        self._fetched_at = 0.0

    async def update(
        self,
        rate_limits: dict[str, Any] | None = None,
        cache_enabled: bool | None = None,
        cache_ttl_days: int | None = None,
        cache_disabled_namespaces: list[str] | None = None,
        updated_by: str | None = None,
    ) -> ScalingConfig:
        """Validate and merge an operator update into the stored document.

        Unlike reads, updates are not fail-open: store errors propagate.

        Raises:
            ConfigurationError: If the update is invalid.
            StoreError: If the document cannot be written.
        """
        update = validate_update(
            rate_limits=rate_limits,
            cache_enabled=cache_enabled,
            cache_ttl_days=cache_ttl_days,
            cache_disabled_namespaces=cache_disabled_namespaces,
        )
        update["updatedAt"] = self._clock()
        if updated_by:
            update["updatedBy"] = updated_by

        def _merge(current: dict[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
            document = dict(current or {})
            limits = update.get("rateLimits")
            document.update(update)
            if limits is not None:
                # Per-endpoint merge: updating one endpoint keeps the others.
                existing = current.get("rateLimits") if current else None
                document["rateLimits"] = {**(existing if isinstance(existing, dict) else {}), **limits}
            return document, document

        document = await self._store.transact(self._key, _merge)
        self.invalidate()
        logger.info("Scaling config updated: %s", sorted(k for k in update if k != "updatedAt"))
        return merge_with_defaults(document)

    @staticmethod
    def defaults() -> ScalingConfig:
        """Built-in defaults, for seeding a fresh deployment."""
        return default_config()
