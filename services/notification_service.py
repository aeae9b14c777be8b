"""In-app notification history and read-state sync across a user's devices."""

from __future__ import annotations

from typing import Any

from errors import NotFoundError, TransientExternalError
from infrastructure.realtime.protocol import RealtimeChannel, user_room
from repositories.notification_repository import NotificationRepository
from schemas.models.notification import NotificationDoc
from shared.logging import get_logger

log = get_logger(__name__)

READ_EVENT = "notification_read"
MAX_PAGE_SIZE = 100


class NotificationService:
    def __init__(
        self, notifications: NotificationRepository, realtime: RealtimeChannel
    ) -> None:
        self._notifications = notifications
        self._realtime = realtime

    async def list_for_user(
        self, user_id: Any, *, limit: int = 50, unread_only: bool = False
    ) -> list[NotificationDoc]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return await self._notifications.list_for_user(
            user_id, limit=limit, unread_only=unread_only
        )

    async def unread_count(self, user_id: Any) -> int:
        return await self._notifications.count_unread(user_id)

    async def mark_read(self, notification_id: Any, user_id: Any) -> None:
        if not await self._notifications.mark_read(notification_id, user_id):
            raise NotFoundError("Notification not found")
        await self._sync(user_id, {"notification_id": str(notification_id)})

    async def mark_all_read(self, user_id: Any) -> int:
        updated = await self._notifications.mark_all_read(user_id)
        if updated:
            await self._sync(user_id, {"all": True})
        return updated

    async def _sync(self, user_id: Any, payload: dict) -> None:
        # Read state is persisted first; the sync event is best effort.
        try:
            await self._realtime.emit(user_room(user_id), READ_EVENT, payload)
        except TransientExternalError as e:
            log.warning("read_sync_emit_failed", user_id=str(user_id), error=e.message)
