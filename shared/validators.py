"""
Input validators — framework-agnostic, pure functions.

Phone numbers are Mauritanian (+222 followed by 8 digits). Local 8-digit
input is accepted and normalised to E.164.
"""

from __future__ import annotations

import re
from typing import Optional

COUNTRY_CODE = "222"
_E164_RE = re.compile(r"^\+222\d{8}$")


def normalize_phone_number(phone_number: str) -> Optional[str]:
    """Return the E.164 form of *phone_number*, or None if it is malformed.

    Accepts ``+222 1234 5678``, ``222-12345678`` and the local
    ``12345678`` form. Any other shape is rejected.
    """
    if not phone_number:
        return None
    digits = re.sub(r"\D", "", phone_number)
    if digits.startswith(COUNTRY_CODE) and len(digits) == len(COUNTRY_CODE) + 8:
        formatted = "+" + digits
    elif len(digits) == 8:
        formatted = "+" + COUNTRY_CODE + digits
    else:
        return None
    return formatted if _E164_RE.match(formatted) else None


def validate_verification_code(code: str, length: int = 6) -> bool:
    """Return True if *code* is exactly *length* decimal digits."""
    return bool(code) and len(code) == length and code.isdigit()
