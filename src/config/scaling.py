# src/config/scaling.py
"""Scaling config document: rate-limit policies and cache switches.

The document is stored in the durable store and edited by operators at
runtime. Its wire shape is camelCase::

    {"cacheEnabled": true, "cacheTTLDays": 7,
     "rateLimits": {"scrapeWebsite": {"maxRequests": 30, "windowMs": 60000}}}

Whatever the stored document contains, :func:`merge_with_defaults` always
yields a complete config: omitting an endpoint never disables its limit.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sitelift.config.settings import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "default"

MIN_WINDOW_MS = 1000
MIN_CACHE_TTL_DAYS = 1
MAX_CACHE_TTL_DAYS = 30


class RateLimitPolicy(BaseModel):
    """Quota for one endpoint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    max_requests: int = Field(alias="maxRequests", ge=1)
    window_ms: int = Field(alias="windowMs", ge=MIN_WINDOW_MS)
    enabled: bool = True


def _per_minute(n: int) -> RateLimitPolicy:
    return RateLimitPolicy(max_requests=n, window_ms=60_000)


DEFAULT_RATE_LIMITS: dict[str, RateLimitPolicy] = {
    "generateBlueprint": _per_minute(10),
    "editBlueprint": _per_minute(15),
    "scrapeWebsite": _per_minute(30),
    "generateImage": _per_minute(20),
    "findBusinesses": _per_minute(30),
    "researchBusiness": _per_minute(10),
    "storeImage": _per_minute(50),
    "generateProposalEmail": _per_minute(20),
    "analyzeImages": _per_minute(30),
    DEFAULT_ENDPOINT: _per_minute(100),
}


class ScalingConfig(BaseModel):
    """Effective scaling configuration after merging over defaults."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    cache_enabled: bool = Field(default=True, alias="cacheEnabled")
    cache_ttl_days: int = Field(
        default=7, alias="cacheTTLDays", ge=MIN_CACHE_TTL_DAYS, le=MAX_CACHE_TTL_DAYS,
    )
    cache_disabled_namespaces: frozenset[str] = Field(
        default_factory=frozenset, alias="cacheDisabledNamespaces",
    )
    rate_limits: dict[str, RateLimitPolicy] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS), alias="rateLimits",
    )

    def policy_for(self, endpoint: str) -> RateLimitPolicy:
        """Policy for ``endpoint``, falling back to the ``default`` entry."""
        policy = self.rate_limits.get(endpoint)
        if policy is None:
            policy = self.rate_limits.get(DEFAULT_ENDPOINT, DEFAULT_RATE_LIMITS[DEFAULT_ENDPOINT])
        return policy

    def cache_allowed(self, namespace: str) -> bool:
        """Whether caching is currently enabled for ``namespace``."""
        return self.cache_enabled and namespace not in self.cache_disabled_namespaces

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the camelCase wire shape."""
        doc = self.model_dump(by_alias=True, mode="json")
        doc["cacheDisabledNamespaces"] = sorted(self.cache_disabled_namespaces)
        return doc


def default_config() -> ScalingConfig:
    return ScalingConfig()


def merge_with_defaults(document: dict[str, Any] | None) -> ScalingConfig:
    """Overlay a stored document on the built-in defaults.

    Pure function. Malformed top-level fields and malformed policies are
    dropped (and logged) rather than failing the whole merge.
    """
    if not document:
        return default_config()

    rate_limits = dict(DEFAULT_RATE_LIMITS)
    raw_limits = document.get("rateLimits") or {}
    if isinstance(raw_limits, dict):
        for endpoint, raw_policy in raw_limits.items():
            try:
                rate_limits[str(endpoint)] = RateLimitPolicy.model_validate(raw_policy)
            except ValidationError as e:
                logger.warning(
                    "Ignoring invalid rate limit policy for %s: %s",
                    endpoint, e.errors()[0].get("msg", e),
                )
    else:
        logger.warning("Ignoring non-mapping rateLimits in scaling config")

    fields: dict[str, Any] = {"rate_limits": rate_limits}
    for alias, name in (
        ("cacheEnabled", "cache_enabled"),
        ("cacheTTLDays", "cache_ttl_days"),
        ("cacheDisabledNamespaces", "cache_disabled_namespaces"),
    ):
        if alias not in document:
            continue
        try:
            ScalingConfig.model_validate({alias: document[alias]})
        except ValidationError:
            logger.warning("Ignoring invalid %s in scaling config: %r", alias, document[alias])
            continue
        fields[name] = document[alias]

    return ScalingConfig(**fields)


def validate_update(
    rate_limits: dict[str, Any] | None = None,
    cache_enabled: bool | None = None,
    cache_ttl_days: int | None = None,
    cache_disabled_namespaces: list[str] | None = None,
) -> dict[str, Any]:
    """Validate an operator update and return the partial document to merge.

    Raises:
        ConfigurationError: If any provided value is out of range.
    """
    update: dict[str, Any] = {}

    if rate_limits is not None:
        validated: dict[str, Any] = {}
        for endpoint, raw in rate_limits.items():
            try:
                policy = RateLimitPolicy.model_validate(raw)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid rate limit for {endpoint}: {e}") from e
            validated[endpoint] = policy.model_dump(by_alias=True)
        update["rateLimits"] = validated

    if cache_enabled is not None:
        update["cacheEnabled"] = bool(cache_enabled)

    if cache_ttl_days is not None:
        if not MIN_CACHE_TTL_DAYS <= cache_ttl_days <= MAX_CACHE_TTL_DAYS:
            raise ConfigurationError(
                f"cacheTTLDays must be between {MIN_CACHE_TTL_DAYS} and {MAX_CACHE_TTL_DAYS}"
            )
        update["cacheTTLDays"] = cache_ttl_days

    if cache_disabled_namespaces is not None:
        update["cacheDisabledNamespaces"] = sorted(set(cache_disabled_namespaces))

    return update
