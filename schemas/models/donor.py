"""
Donor profile as read from the `users` collection.

Only the fields the matching engine needs are modelled; everything else on
the user document is ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import EmbeddedModel, MongoBaseModel
from schemas.models.blood_request import Coordinates
from shared.blood_types import BloodType, UrgencyLevel


class NotificationPreferences(EmbeddedModel):
    """Channels × urgency levels a donor has opted into."""

    sms: bool = True
    push: bool = True
    urgency_levels: list[UrgencyLevel] = [
        UrgencyLevel.CRITICAL,
        UrgencyLevel.URGENT,
        UrgencyLevel.STANDARD,
    ]


class DonorProfile(MongoBaseModel):
    name: str = ""
    phone_number: Optional[str] = None
    blood_type: Optional[BloodType] = None
    location: Optional[Coordinates] = None
    notification_preferences: NotificationPreferences = NotificationPreferences()
    available_for_donation: bool = True
    total_donations: int = 0
    last_donation_date: Optional[datetime] = None
