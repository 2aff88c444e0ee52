# src/cache/fingerprint.py
"""Content-addressed cache keys.

Inputs are canonicalized (trimmed, case-folded) before hashing so that
superficial formatting differences map to the same entry. The namespace
is part of both the hashed material and the storage key.
"""

from __future__ import annotations

import hashlib

KEY_LENGTH = 32


def canonicalize(raw_input: str) -> str:
    """Trim surrounding whitespace and case-fold."""
    return raw_input.strip().casefold()


def cache_key(namespace: str, raw_input: str) -> str:
    """Fixed-length SHA-256 fingerprint of namespace + canonical input."""
    material = f"{namespace}\x00{canonicalize(raw_input)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:KEY_LENGTH]


def storage_key(namespace: str, raw_input: str) -> str:
    """Store key for an entry: ``cache:<namespace>:<fingerprint>``."""
    return f"{namespace_prefix(namespace)}{cache_key(namespace, raw_input)}"


def namespace_prefix(namespace: str) -> str:
    return f"cache:{namespace}:"
