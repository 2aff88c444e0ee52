# src/resilience/timeout.py
"""Per-call deadlines for external collaborators.

A timed-out call raises :class:`UpstreamTimeoutError`, which the default
retry classifier treats as transient. Deadlines apply to a single attempt,
independently of the retry schedule.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from sitelift.config.settings import Settings
from sitelift.core.errors import UpstreamTimeoutError

TIMEOUTS: dict[str, float] = {
    "generative": 30.0,
    "image_generation": 60.0,
    "scraping": 45.0,
    "vision": 30.0,
    "image_store": 30.0,
    "default": 30.0,
}


def timeouts_from_settings(settings: Settings) -> dict[str, float]:
    return {
        "generative": settings.timeout_generative_s,
        "image_generation": settings.timeout_image_generation_s,
        "scraping": settings.timeout_scraping_s,
        "vision": settings.timeout_vision_s,
        "image_store": settings.timeout_image_store_s,
        "default": settings.timeout_default_s,
    }


async def call_with_timeout(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    timeout_s: float = TIMEOUTS["default"],
    operation: str = "external call",
    **kwargs: Any,
) -> Any:
    """Await ``fn(*args, **kwargs)`` for at most ``timeout_s`` seconds.

    Raises:
        UpstreamTimeoutError: If the deadline passes first.
    """
    try:
        return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise UpstreamTimeoutError(operation, timeout_s) from e
