# src/core/outcome.py
"""Explicit success/failure value for best-effort I/O.

Fail-open components (cache, rate limiter, config provider) run their
storage calls through :func:`attempt` and then pick the fallback at the
call site, so the permissive policy stays visible in the code that
applies it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the exception that prevented computing it."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, fallback: T) -> T:
        """Return the value, or ``fallback`` when the operation failed."""
        if self.error is not None:
            return fallback
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Outcome[T]:
        return cls(error=error)


async def attempt(awaitable: Awaitable[T]) -> Outcome[T]:
    """Await ``awaitable`` and capture any ``Exception`` into an Outcome."""
    try:
        return Outcome.success(await awaitable)
    except Exception as e:
        return Outcome.failure(e)
