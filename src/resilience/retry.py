# src/resilience/retry.py
"""Retry with bounded exponential backoff and error classification.

Delay before attempt i+1 (i is 1-based) is
``min(base * 2**(i-1), max_delay)`` plus up to 30% random jitter.
Errors classified as fatal short-circuit on the first failure. The error
that reaches the caller is always the original exception.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

RETRYABLE_MESSAGES = (
    "deadline_exceeded",
    "resource_exhausted",
    "unavailable",
    "timeout",
    "timed out",
    "econnreset",
    "connection reset",
)

Classifier = Callable[[BaseException], bool]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule for one kind of external call."""

    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    jitter_ratio: float = 0.3


RETRY_POLICIES: dict[str, RetryPolicy] = {
    "generative": RetryPolicy(max_retries=3, base_delay_s=1.0, max_delay_s=10.0),
    "image_generation": RetryPolicy(max_retries=2, base_delay_s=2.0, max_delay_s=15.0),
    "payments": RetryPolicy(max_retries=3, base_delay_s=0.5, max_delay_s=5.0),
    "database": RetryPolicy(max_retries=3, base_delay_s=0.1, max_delay_s=2.0),
}


def error_status(error: BaseException) -> int | None:
    """Extract an HTTP-like status code from common exception shapes."""
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_status(status: int) -> bool | None:
    """True = retryable, False = fatal, None = status says nothing."""
    if status in RETRYABLE_STATUS_CODES:
        return True
    if 400 <= status < 500:
        return False
    return None


def is_retryable(error: BaseException) -> bool:
    """Default classifier for upstream failures."""
    status = error_status(error)
    if status is not None:
        verdict = classify_status(status)
        if verdict is not None:
            return verdict

    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    msg = str(error).lower()
    return any(marker in msg for marker in RETRYABLE_MESSAGES)


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in seconds after the ``attempt``-th failure (1-based)."""
    delay = min(policy.base_delay_s * (2 ** (attempt - 1)), policy.max_delay_s)
    return delay + random.random() * policy.jitter_ratio * delay  # noqa: S311


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    policy: RetryPolicy | None = None,
    classifier: Classifier = is_retryable,
    operation: str | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function with retry logic.

    Args:
        fn: Coroutine function performing the external call.
        policy: Backoff schedule (defaults to 3 retries, 1 s base, 30 s cap).
        classifier: Returns True for errors worth retrying.
        operation: Name used in log messages.

    Raises:
        Exception: The last error, unchanged, once retries are exhausted
            or as soon as a non-retryable error is seen.
    """
    policy = policy or RetryPolicy()
    name = operation or getattr(fn, "__name__", "operation")
    attempt = 0

    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            if not classifier(e):
                logger.error(
                    "%s failed with non-retryable %s on attempt %d: %s",
                    name, type(e).__name__, attempt, e,
                )
                raise

            if attempt > policy.max_retries:
                logger.error(
                    "%s failed after %d attempts, retries exhausted: %s",
                    name, attempt, e,
                )
                raise

            delay = compute_delay(policy, attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.2fs",
                name, attempt, policy.max_retries + 1, type(e).__name__, delay,
            )
            await asyncio.sleep(delay)
