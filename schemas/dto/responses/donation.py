"""
Response DTOs for donor responses and donations.

DonationResponse   — POST /donations/{id}/confirm, /dispute
RespondResponse    — POST /blood-requests/{id}/respond
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.donation import DonationDoc


class DonationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    request_id: str
    donor_id: str
    recipient_id: str
    blood_type: str
    hospital: Optional[str] = None
    status: str
    donor_confirmed: bool
    recipient_confirmed: bool
    donor_confirmed_at: Optional[datetime] = None
    recipient_confirmed_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: DonationDoc) -> "DonationResponse":
        return cls(
            id=str(doc.id),
            request_id=str(doc.request_id),
            donor_id=str(doc.donor_id),
            recipient_id=str(doc.recipient_id),
            blood_type=doc.blood_type,
            hospital=doc.hospital,
            status=doc.status,
            donor_confirmed=doc.donor_confirmed,
            recipient_confirmed=doc.recipient_confirmed,
            donor_confirmed_at=doc.donor_confirmed_at,
            recipient_confirmed_at=doc.recipient_confirmed_at,
            dispute_reason=doc.dispute_reason,
            updated_at=doc.updated_at,
        )


class RespondResponse(BaseModel):
    """Response body for POST /blood-requests/{id}/respond."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str
    donor_id: str
    status: str
    responded_at: datetime
    donation: Optional[DonationResponse] = None
