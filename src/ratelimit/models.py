# src/ratelimit/models.py
"""Rate limiting models: RateLimitCounter, RateLimitResult, EndpointUsage."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED = -1


class RateLimitCounter(BaseModel):
    """Fixed-window counter for one (endpoint, identity) pair."""

    model_config = ConfigDict(populate_by_name=True)

    count: int = 0
    window_start: int = Field(alias="windowStart")
    last_request: int = Field(alias="lastRequest")


class RateLimitResult(BaseModel):
    """Decision returned by :meth:`RateLimiter.check`.

    ``remaining == -1`` means the request was not counted (limiting
    disabled for the endpoint, or the store was unavailable).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    allowed: bool
    remaining: int
    limit: int
    retry_after: int | None = Field(default=None, alias="retryAfter")


class EndpointUsage(BaseModel):
    """Activity on one endpoint since a cut-off time."""

    endpoint: str
    active_identities: int = 0
    total_requests: int = 0
