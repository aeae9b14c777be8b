"""
In-app notification history.

GET  /notifications                     — latest notifications + unread count
POST /notifications/{notification_id}/read
POST /notifications/read-all
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from dependencies import CurrentUser, get_current_user, get_notification_service
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.notification import (
    NotificationItem,
    NotificationListResponse,
    ReadAllResponse,
)
from services.notification_service import MAX_PAGE_SIZE, NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    unread_only: bool = False,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    items = await service.list_for_user(
        user.user_id, limit=limit, unread_only=unread_only
    )
    return NotificationListResponse(
        items=[NotificationItem.from_doc(n) for n in items],
        unread_count=await service.unread_count(user.user_id),
    )


@router.post("/read-all", response_model=ReadAllResponse)
async def mark_all_read(
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> ReadAllResponse:
    return ReadAllResponse(updated=await service.mark_all_read(user.user_id))


@router.post("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> MessageResponse:
    await service.mark_read(notification_id, user.user_id)
    return MessageResponse(success=True, message="Notification marked as read")
