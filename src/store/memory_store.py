# src/store/memory_store.py
"""In-process store (STORE_BACKEND=memory).

Single-process only: counters are not shared across workers. Used for
local runs and as the test double for the durable backends.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sitelift.store.base_store import DELETE, KEEP, BaseKVStore, Mutation, R


class MemoryKVStore(BaseKVStore):
    """Dict-backed store with a lock per key in use."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}
        self._expiry: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(
        self, key: str, value: dict[str, Any], expires_at: float | None = None,
    ) -> None:
        self._data[key] = copy.deepcopy(value)
        if expires_at is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = expires_at

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    async def transact(self, key: str, fn: Mutation[R]) -> R:
        async with self._key_lock(key):
            new_value, result = fn(await self.get(key))
            if new_value is DELETE:
                await self.delete(key)
            elif new_value is not KEEP:
                self._data[key] = copy.deepcopy(new_value)
            return result

    async def scan(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        return [
            (k, copy.deepcopy(v))
            for k, v in sorted(self._data.items())
            if k.startswith(prefix)
        ]

    async def purge_expired(self, now: float) -> int:
        expired = [k for k, exp in self._expiry.items() if exp < now]
        for key in expired:
            await self.delete(key)
        return len(expired)

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        # Locks live only while a transaction holds or awaits them.
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._data)
