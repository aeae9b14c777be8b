"""
Response DTOs for in-app notification history.

NotificationItem       — one entry in NotificationListResponse
NotificationListResponse — GET /notifications
ReadAllResponse        — POST /notifications/read-all
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.notification import NotificationDoc


class NotificationItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    title: str
    message: str
    data: dict[str, Any]
    urgent: bool
    read: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: NotificationDoc) -> "NotificationItem":
        return cls(
            id=str(doc.id),
            type=doc.type,
            title=doc.title,
            message=doc.message,
            data=doc.data.model_dump(mode="json"),
            urgent=doc.urgent,
            read=doc.read,
            created_at=doc.created_at,
        )


class NotificationListResponse(BaseModel):
    """Response body for GET /notifications."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[NotificationItem]
    unread_count: int


class ReadAllResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    updated: int
