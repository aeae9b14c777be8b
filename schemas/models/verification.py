"""
Verification code document model.

Maps to the `verification-codes` MongoDB collection.

One live record per phone number: issuing a new code replaces the previous
record. code_hash stores SHA-256(code) — the plain code is never stored.
A TTL index on expires_at removes records once they expire; a successful
verification marks the record verified and then deletes it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel


class VerificationCodeDoc(MongoBaseModel):
    """Document model for the `verification-codes` collection."""

    phone_number: str
    code_hash: str
    expires_at: datetime
    verified: bool = False
    created_at: Optional[datetime] = None
