"""
Blood request document model.

Maps to the `blood-requests` MongoDB collection. The request is owned by the
surrounding application; the engine reads it and appends to / updates the
embedded matched_donors list and fulfilled_units.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from schemas.models.base import EmbeddedModel, MongoBaseModel, PyObjectId
from shared.blood_types import BloodType, UrgencyLevel


class RequestStatus(str, Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Coordinates(EmbeddedModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class PatientInfo(EmbeddedModel):
    name: str = ""
    blood_type: BloodType


class Hospital(EmbeddedModel):
    name: str = ""
    coordinates: Coordinates


class MatchedDonor(EmbeddedModel):
    """Entry in the request's embedded matched_donors list."""

    donor_id: PyObjectId
    donor_name: str = ""
    donor_blood_type: BloodType
    status: MatchStatus = MatchStatus.PENDING
    responded_at: Optional[datetime] = None
    message: Optional[str] = None


class BloodRequestDoc(MongoBaseModel):
    """Document model for the `blood-requests` collection."""

    requester_id: PyObjectId
    patient_info: PatientInfo
    hospital: Hospital
    urgency_level: UrgencyLevel = UrgencyLevel.STANDARD
    required_units: int = Field(default=1, ge=1)
    deadline: Optional[datetime] = None
    status: RequestStatus = RequestStatus.ACTIVE
    matched_donors: list[MatchedDonor] = []
    fulfilled_units: int = Field(default=0, ge=0)
    contact_phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "BloodRequestDoc":
        if self.fulfilled_units > self.required_units:
            raise ValueError("fulfilled_units cannot exceed required_units")
        donor_ids = [str(m.donor_id) for m in self.matched_donors]
        if len(donor_ids) != len(set(donor_ids)):
            raise ValueError("matched_donors must be unique per donor_id")
        if str(self.requester_id) in donor_ids:
            raise ValueError("requester cannot be a matched donor")
        return self

    def matched_donor(self, donor_id) -> Optional[MatchedDonor]:
        for entry in self.matched_donors:
            if str(entry.donor_id) == str(donor_id):
                return entry
        return None

    @property
    def matched_donor_ids(self) -> set[str]:
        return {str(m.donor_id) for m in self.matched_donors}
