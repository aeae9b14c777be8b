"""
Notification and delivery-attempt document models.

`notifications` holds the in-app history: one record per (user, event),
written before any external send so an interrupted dispatch still leaves a
record of intent. Only `read` changes after insert.

`data` is a tagged union keyed by `kind`; each notification type carries its
own fixed payload shape.

`delivery-attempts` records what happened on each external channel for a
notification, including sends that finish after the dispatch call returned.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, model_validator

from schemas.models.base import EmbeddedModel, MongoBaseModel, PyObjectId
from shared.blood_types import BloodType, UrgencyLevel


class NotificationType(str, Enum):
    BLOOD_REQUEST = "blood_request"
    DONATION_UPDATE = "donation_update"
    CHAT_MESSAGE = "chat_message"
    GENERAL = "general"


class Channel(str, Enum):
    SMS = "sms"
    REALTIME = "realtime"


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    SIMULATED = "simulated"  # dev fallback: no provider configured
    FAILED = "failed"


class BloodRequestPayload(EmbeddedModel):
    kind: Literal["blood_request"] = "blood_request"
    request_id: PyObjectId
    blood_type: BloodType
    hospital: str = ""
    urgency: UrgencyLevel
    deadline: Optional[datetime] = None
    distance_km: Optional[float] = None


class DonationUpdatePayload(EmbeddedModel):
    kind: Literal["donation_update"] = "donation_update"
    request_id: PyObjectId
    donation_id: Optional[PyObjectId] = None
    status: str


class ChatMessagePayload(EmbeddedModel):
    kind: Literal["chat_message"] = "chat_message"
    chat_id: str
    sender_id: PyObjectId


class GeneralPayload(EmbeddedModel):
    kind: Literal["general"] = "general"
    extra: dict[str, Any] = {}


NotificationPayload = Annotated[
    Union[BloodRequestPayload, DonationUpdatePayload, ChatMessagePayload, GeneralPayload],
    Field(discriminator="kind"),
]


def dispatch_key(request_id: Any, donor_id: Any) -> str:
    """Idempotency key for a blood-request notification to one donor."""
    return f"{request_id}:{donor_id}"


class NotificationDoc(MongoBaseModel):
    """Document model for the `notifications` collection."""

    user_id: PyObjectId
    type: NotificationType
    title: str
    message: str
    data: NotificationPayload
    urgent: bool = False
    read: bool = False
    created_at: Optional[datetime] = None
    # Set only for blood-request fan-out; unique sparse index
    dispatch_key: Optional[str] = None

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "NotificationDoc":
        if self.data.kind != self.type:
            raise ValueError(
                f"payload kind {self.data.kind!r} does not match type {self.type!r}"
            )
        return self

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        # Sparse unique index: absent, not null, for non-dispatch notifications
        if data.get("dispatch_key") is None:
            data.pop("dispatch_key", None)
        return data


class DeliveryAttemptDoc(MongoBaseModel):
    """Document model for the `delivery-attempts` collection."""

    notification_id: PyObjectId
    user_id: PyObjectId
    request_id: Optional[PyObjectId] = None
    channel: Channel
    status: DeliveryStatus
    provider_id: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    error: Optional[str] = None
    recorded_at: Optional[datetime] = None
