# src/ratelimit/identity.py
"""Caller identity for rate limiting.

The first hop of ``X-Forwarded-For`` wins, then the raw connection
address. Callers without either share the ``unknown`` bucket.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

UNKNOWN_IDENTITY = "unknown"

_UNSAFE_KEY_CHARS = re.compile(r"[.:/]")


def client_identifier(
    headers: Mapping[str, str | Sequence[str]] | None = None,
    remote_addr: str | None = None,
) -> str:
    """Derive the rate-limit identity for a request."""
    forwarded = _header(headers or {}, "x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if remote_addr and remote_addr.strip():
        return remote_addr.strip()
    return UNKNOWN_IDENTITY


def identity_key(identity: str) -> str:
    """Storage-safe form of an identity (``1.2.3.4`` -> ``1_2_3_4``)."""
    return _UNSAFE_KEY_CHARS.sub("_", identity) or UNKNOWN_IDENTITY


def _header(headers: Mapping[str, str | Sequence[str]], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() != name:
            continue
        if isinstance(value, str):
            return value
        return value[0] if value else None
    return None
