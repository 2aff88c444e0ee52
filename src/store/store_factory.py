# src/store/store_factory.py
"""Factory for durable store instantiation."""

from __future__ import annotations

from sitelift.config.settings import Settings
from sitelift.store.base_store import BaseKVStore


def create_store(settings: Settings | None = None) -> BaseKVStore:
    """Instantiate the configured store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseKVStore implementation.
    """
    backend = "memory" if settings is None else settings.store_backend

    if backend == "memory":
        from sitelift.store.memory_store import MemoryKVStore
        return MemoryKVStore()

    if backend == "sqlite":
        from sitelift.store.sqlite_store import SqliteKVStore
        return SqliteKVStore(db_path=settings.store_sqlite_path)  # type: ignore[union-attr]

    if backend == "redis":
        from sitelift.store.redis_store import RedisKVStore
        if settings is None or not settings.store_redis_url:
            raise ValueError(
                "STORE_REDIS_URL must be set when STORE_BACKEND=redis"
            )
        return RedisKVStore(
            redis_url=settings.store_redis_url,
            key_prefix=settings.store_key_prefix,
        )

    raise ValueError(f"Unsupported store backend: {backend!r}")
