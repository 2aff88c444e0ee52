# src/cache/result_cache.py
"""Keyed durable result cache with per-namespace TTL and a kill switch.

Caching is best-effort. Every store call runs through ``attempt`` and a
failure degrades to the permissive outcome chosen here: a failed read is
a miss, a failed write is logged and dropped. Callers never see a store
error from :meth:`ResultCache.get` or :meth:`ResultCache.put`.

Expired entries are evicted lazily, inside the same store transaction
that reads them.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import ValidationError

from sitelift.cache.fingerprint import cache_key, namespace_prefix, storage_key
from sitelift.cache.models import CacheEntry, CacheStats
from sitelift.config.provider import ScalingConfigProvider
from sitelift.config.scaling import ScalingConfig
from sitelift.core.outcome import attempt
from sitelift.store.base_store import DELETE, KEEP, BaseKVStore

logger = logging.getLogger(__name__)

_DAY_S = 24 * 3600


class ResultCache:
    """Content-addressed cache in front of expensive external calls."""

    def __init__(
        self,
        store: BaseKVStore,
        config_provider: ScalingConfigProvider,
        ttls: dict[str, int],
        flag_max_age_s: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config_provider
        self._ttls = dict(ttls)
        self._flag_max_age_s = flag_max_age_s
        self._clock = clock
        self.stats = CacheStats()

    async def get(self, namespace: str, raw_input: str) -> Any | None:
        """Return the cached payload, or None on miss/expiry/disabled/error."""
        entry = await self.lookup(namespace, raw_input)
        return entry.payload if entry is not None else None

    async def lookup(self, namespace: str, raw_input: str) -> CacheEntry | None:
        """Like :meth:`get` but returns the whole entry."""
        self._check_namespace(namespace)
        config = await self._config.get(max_age_s=self._flag_max_age_s)
        if not config.cache_allowed(namespace):
            logger.debug("Cache disabled for %s, bypassing read", namespace)
            return None

        key = storage_key(namespace, raw_input)
        now = self._clock()

        def _read_or_evict(
            current: dict[str, Any] | None,
        ) -> tuple[Any, tuple[str, CacheEntry | None]]:
            if current is None:
                return KEEP, ("miss", None)
            try:
                entry = CacheEntry.model_validate(current)
            except ValidationError:
                return DELETE, ("corrupt", None)
            if entry.namespace != namespace:
                return KEEP, ("miss", None)
            if entry.is_expired(now):
                return DELETE, ("expired", None)
            return KEEP, ("hit", entry)

        outcome = await attempt(self._store.transact(key, _read_or_evict))
        if not outcome.ok:
            self.stats.errors += 1
            self.stats.misses += 1
            logger.warning("Cache read error for %s, treating as miss: %s", namespace, outcome.error)
            return None

        status, entry = outcome.value  # type: ignore[misc]
        if status == "hit":
            self.stats.hits += 1
            logger.info("Cache hit: %s %s", namespace, _preview(raw_input))
            return entry

        self.stats.misses += 1
        if status in ("expired", "corrupt"):
            self.stats.evictions += 1
            logger.info("Cache entry %s evicted: %s %s", status, namespace, _preview(raw_input))
        else:
            logger.debug("Cache miss: %s %s", namespace, _preview(raw_input))
        return None

    async def put(self, namespace: str, raw_input: str, payload: Any) -> bool:
        """Store ``payload``; returns False when skipped or the write failed."""
        self._check_namespace(namespace)
        config = await self._config.get(max_age_s=self._flag_max_age_s)
        if not config.cache_allowed(namespace):
            logger.debug("Cache disabled for %s, skipping write", namespace)
            return False

        now = self._clock()
        try:
            entry = CacheEntry(
                key=cache_key(namespace, raw_input),
                namespace=namespace,  # type: ignore[arg-type]
                payload=payload,
                source=raw_input,
                created_at=now,
                expires_at=now + self.ttl_for(namespace, config),
            )
            document = entry.model_dump(mode="json")
        except (TypeError, ValueError) as e:
            self.stats.errors += 1
            logger.warning("Cache payload for %s is not serializable, skipping write: %s", namespace, e)
            return False

        outcome = await attempt(
            self._store.set(
                storage_key(namespace, raw_input),
                document,
                expires_at=entry.expires_at,
            )
        )
        if not outcome.ok:
            self.stats.errors += 1
            logger.warning("Cache write error for %s, continuing without cache: %s", namespace, outcome.error)
            return False

        self.stats.writes += 1
        logger.debug("Cache write: %s %s", namespace, _preview(raw_input))
        return True

    def ttl_for(self, namespace: str, config: ScalingConfig | None = None) -> int:
        """TTL in seconds; an explicit ``cacheTTLDays`` overrides scrape results."""
        if (
            namespace == "scrape-result"
            and config is not None
            and "cache_ttl_days" in config.model_fields_set
        ):
            return config.cache_ttl_days * _DAY_S
        return self._ttls[namespace]

    async def invalidate(self, namespace: str, raw_input: str) -> None:
        """Delete one entry. Store errors propagate."""
        self._check_namespace(namespace)
        await self._store.delete(storage_key(namespace, raw_input))

    async def discard(self, namespace: str, raw_input: str, reason: object) -> None:
        """Evict an entry whose payload the caller could not use. Never raises."""
        self._check_namespace(namespace)
        self.stats.evictions += 1
        logger.warning(
            "Discarding unusable %s cache entry %s: %s", namespace, _preview(raw_input), reason,
        )
        outcome = await attempt(self._store.delete(storage_key(namespace, raw_input)))
        if not outcome.ok:
            self.stats.errors += 1
            logger.warning("Cache evict error for %s: %s", namespace, outcome.error)

    async def purge(self, namespace: str) -> int:
        """Delete every entry of ``namespace``. Store errors propagate."""
        self._check_namespace(namespace)
        entries = await self._store.scan(namespace_prefix(namespace))
        for key, _ in entries:
            await self._store.delete(key)
        logger.info("Purged %d %s cache entries", len(entries), namespace)
        return len(entries)

    async def count(self, namespace: str) -> int:
        """Number of stored entries (including not yet evicted stale ones)."""
        self._check_namespace(namespace)
        return len(await self._store.scan(namespace_prefix(namespace)))

    async def sweep(self) -> int:
        """Optional eager removal of expired entries."""
        removed = await self._store.purge_expired(self._clock())
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        return removed

    def _check_namespace(self, namespace: str) -> None:
        if namespace not in self._ttls:
            raise ValueError(f"Unknown cache namespace: {namespace!r}")


def _preview(raw_input: str, limit: int = 50) -> str:
    return raw_input if len(raw_input) <= limit else f"{raw_input[:limit]}..."
