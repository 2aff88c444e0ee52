# src/store/redis_store.py
"""Redis-based durable store (STORE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for distributed/multi-instance deployments: rate-limit counters
are shared by every worker pointing at the same Redis.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sitelift.core.errors import StoreError
from sitelift.store.base_store import DELETE, KEEP, BaseKVStore, Mutation, R

logger = logging.getLogger(__name__)

_MAX_TRANSACTION_ATTEMPTS = 10


class RedisKVStore(BaseKVStore):
    """Redis-backed store using WATCH/MULTI optimistic transactions."""

    def __init__(self, redis_url: str, key_prefix: str = "sitelift:") -> None:
        try:
            import redis.asyncio as aioredis
            from redis.exceptions import RedisError, WatchError
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        self._prefix = key_prefix
        self._redis_error = RedisError
        self._watch_error = WatchError

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            data = await self._client.get(self._k(key))
        except self._redis_error as e:
            raise StoreError("get", key, e) from e
        return self._decode(key, data)

    async def set(
        self, key: str, value: dict[str, Any], expires_at: float | None = None,
    ) -> None:
        try:
            payload = json.dumps(value)
            if expires_at is None:
                await self._client.set(self._k(key), payload)
            else:
                await self._client.set(
                    self._k(key), payload, pxat=int(expires_at * 1000),
                )
        except (self._redis_error, TypeError, ValueError) as e:
            raise StoreError("set", key, e) from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._k(key))
        except self._redis_error as e:
            raise StoreError("delete", key, e) from e

    async def transact(self, key: str, fn: Mutation[R]) -> R:
        redis_key = self._k(key)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_TRANSACTION_ATTEMPTS):
                    try:
                        await pipe.watch(redis_key)
                        current = self._decode_for_update(key, await pipe.get(redis_key))
                        new_value, result = fn(current)
                        if new_value is KEEP:
                            await pipe.unwatch()
                            return result
                        pipe.multi()
                        if new_value is DELETE:
                            pipe.delete(redis_key)
                        else:
                            pipe.set(redis_key, json.dumps(new_value), keepttl=True)
                        await pipe.execute()
                        return result
                    except self._watch_error:
                        logger.debug("Concurrent write on %s, retrying transaction", key)
                        continue
        except self._redis_error as e:
            raise StoreError("transact", key, e) from e
        raise StoreError("transact", key, RuntimeError("too much contention"))

    async def scan(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        entries: list[tuple[str, dict[str, Any]]] = []
        try:
            async for redis_key in self._client.scan_iter(match=f"{self._k(prefix)}*"):
                key = redis_key[len(self._prefix):]
                value = self._decode(key, await self._client.get(redis_key))
                if value is not None:
                    entries.append((key, value))
        except self._redis_error as e:
            raise StoreError("scan", prefix, e) from e
        return sorted(entries)

    async def purge_expired(self, now: float) -> int:
        """Redis drops expired keys itself."""
        return 0

    async def close(self) -> None:
        await self._client.aclose()

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @staticmethod
    def _decode(key: str, data: str | None) -> dict[str, Any] | None:
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise StoreError("decode", key, e) from e

    @classmethod
    def _decode_for_update(cls, key: str, data: str | None) -> dict[str, Any] | None:
        """Undecodable values read as absent so the mutation can replace them."""
        try:
            return cls._decode(key, data)
        except StoreError:
            logger.warning("Replacing undecodable store entry %s", key)
            return None
