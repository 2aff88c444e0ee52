# src/logging/context.py
"""Per-request logging context: request_id, endpoint and caller identity.

Values live in contextvars so concurrent requests on one event loop never
see each other's context.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_endpoint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "endpoint", default=None
)
_identity: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "identity", default=None
)


@dataclass(frozen=True)
class LogContext:
    """Snapshot of the current request context."""

    request_id: str | None = None
    endpoint: str | None = None
    identity: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Non-None fields only."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    return LogContext(
        request_id=_request_id.get(),
        endpoint=_endpoint.get(),
        identity=_identity.get(),
    )


def set_request_context(
    request_id: str, endpoint: str | None = None, identity: str | None = None,
) -> None:
    """Set context for the request being handled by the current task."""
    _request_id.set(request_id)
    _endpoint.set(endpoint)
    _identity.set(identity)


def clear_context() -> None:
    _request_id.set(None)
    _endpoint.set(None)
    _identity.set(None)
