"""Content hashing for trust decisions."""

from __future__ import annotations

import hashlib


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def payload_hash(code: str) -> str:
    """Content hash of a native code payload (SHA-256 over its UTF-8 text).

    This is the identity stored in the trust store, so it must never change
    for identical text.
    """
    return sha256_hex(code.encode("utf-8"))
