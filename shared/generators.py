"""
Random code and identifier generators — pure, side-effect-free functions.

All generators use cryptographically secure sources (``secrets`` module).
"""

from __future__ import annotations

import secrets
import string
import time


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_dev_delivery_id() -> str:
    """Synthetic SMS id used when no provider is configured (``dev_<ms>``)."""
    return f"dev_{int(time.time() * 1000)}"
