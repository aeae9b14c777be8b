"""Unit tests for the blood type compatibility matrix."""

import pytest

from shared.blood_types import (
    COMPATIBLE_DONORS,
    BloodType,
    can_donate,
    compatible_donor_types,
    parse_blood_type,
)


class TestCompatibilityMatrix:
    def test_covers_all_eight_types(self):
        assert set(COMPATIBLE_DONORS) == set(BloodType)

    @pytest.mark.parametrize("patient", list(BloodType))
    def test_o_negative_gives_to_everyone(self, patient):
        assert BloodType.O_NEG in COMPATIBLE_DONORS[patient]

    @pytest.mark.parametrize("patient", list(BloodType))
    def test_same_type_always_compatible(self, patient):
        assert patient in COMPATIBLE_DONORS[patient]

    def test_ab_positive_receives_from_everyone(self):
        assert COMPATIBLE_DONORS[BloodType.AB_POS] == frozenset(BloodType)

    def test_o_negative_receives_only_o_negative(self):
        assert COMPATIBLE_DONORS[BloodType.O_NEG] == frozenset({BloodType.O_NEG})

    @pytest.mark.parametrize(
        "donor, patient, expected",
        [
            ("A+", "A-", False),
            ("O+", "A+", True),
            ("O+", "A-", False),
            ("B-", "AB-", True),
            ("AB+", "AB-", False),
            ("A-", "B+", False),
        ],
    )
    def test_can_donate(self, donor, patient, expected):
        assert can_donate(donor, patient) is expected

    def test_compatible_donor_types_accepts_strings(self):
        assert compatible_donor_types("a-") == frozenset(
            {BloodType.A_NEG, BloodType.O_NEG}
        )


class TestParseBloodType:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("O-", BloodType.O_NEG),
            ("o neg", BloodType.O_NEG),
            ("A POS", BloodType.A_POS),
            ("ab+", BloodType.AB_POS),
            ("B-ve", BloodType.B_NEG),
            ("AB negative", BloodType.AB_NEG),
            (BloodType.O_POS, BloodType.O_POS),
        ],
    )
    def test_spellings(self, raw, expected):
        assert parse_blood_type(raw) is expected

    @pytest.mark.parametrize("raw", ["", "C+", "O", "A++", None])
    def test_rejects_unknown(self, raw):
        with pytest.raises(ValueError):
            parse_blood_type(raw)
