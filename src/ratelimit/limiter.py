# src/ratelimit/limiter.py
"""Distributed fixed-window rate limiter backed by the durable store.

Each (endpoint, identity) pair owns one counter record. The whole
read-check-increment decision runs inside a single store transaction, so
concurrent requests for the same pair serialize and at most
``max_requests`` are admitted per window.

Fixed windows admit up to twice the quota across a window boundary.
That approximation is accepted in exchange for O(1) storage per caller.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from sitelift.config.provider import ScalingConfigProvider
from sitelift.config.scaling import RateLimitPolicy
from sitelift.core.errors import RateLimitExceeded
from sitelift.core.outcome import attempt
from sitelift.ratelimit.identity import identity_key
from sitelift.ratelimit.models import UNLIMITED, EndpointUsage, RateLimitCounter, RateLimitResult
from sitelift.store.base_store import KEEP, BaseKVStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "ratelimit:"


def counter_key(endpoint: str, identity: str) -> str:
    return f"{_KEY_PREFIX}{endpoint}:{identity_key(identity)}"


def decide(
    current: dict[str, Any] | None, policy: RateLimitPolicy, now_ms: int,
) -> tuple[Any, RateLimitResult]:
    """Pure admission decision for one counter.

    Returns the counter value to write (or ``KEEP``) and the result.
    """
    limit = policy.max_requests
    counter: RateLimitCounter | None = None
    if current is not None:
        try:
            counter = RateLimitCounter.model_validate(current)
        except ValidationError:
            counter = None

    if counter is None or now_ms - counter.window_start > policy.window_ms:
        fresh = RateLimitCounter(count=1, window_start=now_ms, last_request=now_ms)
        return (
            fresh.model_dump(by_alias=True),
            RateLimitResult(allowed=True, remaining=limit - 1, limit=limit),
        )

    if counter.count >= limit:
        retry_after = math.ceil((counter.window_start + policy.window_ms - now_ms) / 1000)
        return KEEP, RateLimitResult(
            allowed=False, remaining=0, limit=limit, retry_after=max(1, retry_after),
        )

    bumped = counter.model_copy(update={"count": counter.count + 1, "last_request": now_ms})
    return (
        bumped.model_dump(by_alias=True),
        RateLimitResult(allowed=True, remaining=limit - counter.count - 1, limit=limit),
    )


class RateLimiter:
    """Per-endpoint, per-caller quota enforcement."""

    def __init__(
        self,
        store: BaseKVStore,
        config_provider: ScalingConfigProvider,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config_provider
        self._clock = clock

    async def check(self, identity: str, endpoint: str) -> RateLimitResult:
        """Count one request and decide whether it may proceed.

        Infrastructure failures fail open: the request is allowed and
        reported with ``remaining == -1``.
        """
        config = await self._config.get()
        policy = config.policy_for(endpoint)
        if not policy.enabled:
            return RateLimitResult(allowed=True, remaining=UNLIMITED, limit=policy.max_requests)

        now_ms = int(self._clock() * 1000)
        outcome = await attempt(
            self._store.transact(
                counter_key(endpoint, identity),
                lambda current: decide(current, policy, now_ms),
            )
        )
        if not outcome.ok:
            logger.warning(
                "Rate limit check failed for %s, allowing request: %s",
                endpoint, outcome.error,
            )
            return RateLimitResult(allowed=True, remaining=UNLIMITED, limit=policy.max_requests)

        result: RateLimitResult = outcome.value  # type: ignore[assignment]
        if not result.allowed:
            logger.info(
                "Rate limit exceeded: endpoint=%s identity=%s retry_after=%ss",
                endpoint, identity, result.retry_after,
            )
        return result

    async def enforce(self, identity: str, endpoint: str) -> RateLimitResult:
        """Like :meth:`check`, but raise when the request is denied.

        Raises:
            RateLimitExceeded: With the endpoint, retry delay and limit.
        """
        result = await self.check(identity, endpoint)
        if not result.allowed:
            raise RateLimitExceeded(endpoint, result.retry_after or 1, result.limit)
        return result

    async def usage_stats(
        self, endpoints: Iterable[str], since_ms: int | None = None,
    ) -> dict[str, EndpointUsage]:
        """Active identities and request totals per endpoint.

        Args:
            endpoints: Endpoint names to report.
            since_ms: Cut-off (epoch ms). Defaults to one hour ago.
        """
        if since_ms is None:
            since_ms = int(self._clock() * 1000) - 3_600_000

        stats: dict[str, EndpointUsage] = {}
        for endpoint in endpoints:
            usage = EndpointUsage(endpoint=endpoint)
            for key, value in await self._store.scan(f"{_KEY_PREFIX}{endpoint}:"):
                try:
                    counter = RateLimitCounter.model_validate(value)
                except ValidationError:
                    logger.debug("Skipping malformed counter %s", key)
                    continue
                if counter.last_request <= since_ms:
                    continue
                usage.active_identities += 1
                if counter.window_start > since_ms:
                    usage.total_requests += counter.count
            stats[endpoint] = usage
        return stats


def rate_limit_response(result: RateLimitResult) -> dict[str, Any]:
    """HTTP 429 body for a denied request."""
    return {
        "error": "Too many requests",
        "retryAfter": result.retry_after,
        "limit": result.limit,
        "message": f"Rate limit exceeded. Please retry after {result.retry_after} seconds.",
    }


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Standard response headers describing the decision."""
    headers = {"X-RateLimit-Limit": str(result.limit)}
    if result.remaining != UNLIMITED:
        headers["X-RateLimit-Remaining"] = str(result.remaining)
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers
