# src/store/base_store.py
"""Abstract durable key-value/counter store.

Values are JSON-serializable dicts. The one concurrency primitive is
:meth:`BaseKVStore.transact`: a per-key atomic read-then-conditionally-write.
Rate-limit counters and cache eviction both go through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

R = TypeVar("R")


class _Marker:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


KEEP = _Marker("KEEP")
DELETE = _Marker("DELETE")

# fn(current_value) -> (new_value | KEEP | DELETE, result)
Mutation = Callable[[dict[str, Any] | None], tuple[Any, R]]


class BaseKVStore(ABC):
    """Unified interface for durable storage backends."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def set(
        self, key: str, value: dict[str, Any], expires_at: float | None = None,
    ) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        ``expires_at`` (epoch seconds) is advisory. Readers that care about
        freshness must still check it themselves; backends may use it for
        native expiry or :meth:`purge_expired`.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""

    @abstractmethod
    async def transact(self, key: str, fn: Mutation[R]) -> R:
        """Atomically read ``key``, apply ``fn`` and write its decision.

        ``fn`` must be a pure function: it may be re-invoked when an
        optimistic backend detects a conflicting writer.
        """

    @abstractmethod
    async def scan(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        """List ``(key, value)`` pairs whose key starts with ``prefix``."""

    @abstractmethod
    async def purge_expired(self, now: float) -> int:
        """Delete entries whose ``expires_at`` is before ``now``."""

    async def increment(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to an integer field, creating it at 0."""

        def _bump(current: dict[str, Any] | None) -> tuple[dict[str, Any], int]:
            value = dict(current or {})
            value[field] = int(value.get(field, 0)) + amount
            return value, value[field]

        return await self.transact(key, _bump)

    async def close(self) -> None:
        """Release backend resources."""
