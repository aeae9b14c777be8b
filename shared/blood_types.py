"""
Blood type compatibility matrix — pure lookup, no I/O.

COMPATIBLE_DONORS maps a patient's blood type to the donor types that may
safely give red cells to that patient. O- is the universal donor, AB+ the
universal recipient, and every type can receive its own.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Union


class BloodType(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class UrgencyLevel(str, Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    STANDARD = "standard"


_ALL = frozenset(BloodType)

COMPATIBLE_DONORS: dict[BloodType, frozenset[BloodType]] = {
    BloodType.A_POS: frozenset(
        {BloodType.A_POS, BloodType.A_NEG, BloodType.O_POS, BloodType.O_NEG}
    ),
    BloodType.A_NEG: frozenset({BloodType.A_NEG, BloodType.O_NEG}),
    BloodType.B_POS: frozenset(
        {BloodType.B_POS, BloodType.B_NEG, BloodType.O_POS, BloodType.O_NEG}
    ),
    BloodType.B_NEG: frozenset({BloodType.B_NEG, BloodType.O_NEG}),
    BloodType.AB_POS: _ALL,
    BloodType.AB_NEG: frozenset(
        {BloodType.A_NEG, BloodType.B_NEG, BloodType.AB_NEG, BloodType.O_NEG}
    ),
    BloodType.O_POS: frozenset({BloodType.O_POS, BloodType.O_NEG}),
    BloodType.O_NEG: frozenset({BloodType.O_NEG}),
}


def parse_blood_type(value: Union[str, BloodType]) -> BloodType:
    """Parse common spellings ("o neg", "A POS", "ab+", "B-ve") into a BloodType.

    Raises:
        ValueError: if *value* does not name one of the eight ABO/Rh types.
    """
    if isinstance(value, BloodType):
        return value
    s = re.sub(r"\s+", "", str(value or "")).upper()
    s = s.replace("POSITIVE", "+").replace("NEGATIVE", "-")
    s = s.replace("POS", "+").replace("NEG", "-")
    s = s.replace("+VE", "+").replace("-VE", "-")
    try:
        return BloodType(s)
    except ValueError:
        raise ValueError(f"Unknown blood type: {value!r}") from None


def compatible_donor_types(patient: Union[str, BloodType]) -> frozenset[BloodType]:
    """Donor blood types that may give to a patient of type *patient*."""
    return COMPATIBLE_DONORS[parse_blood_type(patient)]


def can_donate(donor: Union[str, BloodType], patient: Union[str, BloodType]) -> bool:
    """Return True if a *donor* of that type may give to *patient*."""
    return parse_blood_type(donor) in compatible_donor_types(patient)
