# src/core/errors.py
"""Exception hierarchy shared by the resilience layer.

Upstream errors raised by collaborators are never wrapped: the retry
executor re-raises the original exception. These types exist for code
that needs to signal an upstream status or a timeout itself.
"""

from __future__ import annotations


class SiteLiftError(Exception):
    """Base class for errors raised by sitelift itself."""


class StoreError(SiteLiftError):
    """The durable key-value store failed (unreachable, corrupt, conflict)."""

    def __init__(self, operation: str, key: str, cause: Exception | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Store {operation} failed for '{key}'{detail}")


class UpstreamError(SiteLiftError):
    """An external service answered with an HTTP-like error status."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class UpstreamTimeoutError(SiteLiftError, TimeoutError):
    """An external call exceeded its own deadline."""

    def __init__(self, operation: str, timeout_s: float):
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} timeout after {timeout_s:.1f}s")


class RateLimitExceeded(SiteLiftError):
    """Raised by callers that prefer an exception over inspecting the result."""

    def __init__(self, endpoint: str, retry_after: int, limit: int):
        self.endpoint = endpoint
        self.retry_after = retry_after
        self.limit = limit
        super().__init__(
            f"Rate limit exceeded for '{endpoint}'. "
            f"Please retry after {retry_after} seconds."
        )
