"""
Donation document model.

Maps to the `donations` MongoDB collection. Created when a donor accepts a
match, mutated only through donor/recipient confirmation or a dispute, never
deleted. status is recomputed by services.donation_service.derive_status()
whenever a confirmation flag changes; it is not a persistence-layer hook.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.blood_types import BloodType


class DonationStatus(str, Enum):
    PENDING = "pending"
    DONOR_CONFIRMED = "donor_confirmed"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class ConfirmingParty(str, Enum):
    DONOR = "donor"
    RECIPIENT = "recipient"


class DonationDoc(MongoBaseModel):
    """Document model for the `donations` collection."""

    request_id: PyObjectId
    donor_id: PyObjectId
    recipient_id: PyObjectId
    blood_type: BloodType
    hospital: Optional[str] = None
    donation_date: datetime

    donor_confirmed: bool = False
    donor_confirmed_at: Optional[datetime] = None
    recipient_confirmed: bool = False
    recipient_confirmed_at: Optional[datetime] = None

    status: DonationStatus = DonationStatus.PENDING
    dispute_reason: Optional[str] = None

    volume: Optional[int] = Field(default=None, ge=0)  # ml
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
