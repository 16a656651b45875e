"""Digest helpers for values that must never be stored raw."""

from __future__ import annotations

import hashlib


def sha256_hex(value: str) -> str:
    """Return the lowercase SHA-256 hex digest of ``value`` (UTF-8)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
