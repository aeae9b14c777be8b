"""
Cryptographic helpers — token hashing and constant-time comparison.

Verification codes are stored as SHA-256 digests; comparisons go through
``hmac.compare_digest`` so response timing does not leak how many leading
characters matched.
"""

from __future__ import annotations

import hashlib
import hmac


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes before storing them in the database so the
    plaintext is never persisted.

    Args:
        token: The plaintext token string to hash.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without short-circuiting on the first mismatch."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
