"""Persistence for in-app notifications and per-channel delivery attempts."""

from __future__ import annotations

from typing import Any, Optional

from pymongo import DESCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from schemas.models.base import parse_object_id
from schemas.models.notification import DeliveryAttemptDoc, NotificationDoc


class NotificationRepository:
    collection_name = "notifications"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def insert(self, doc: NotificationDoc) -> NotificationDoc:
        result = await self._col.insert_one(doc.to_mongo())
        return doc.model_copy(update={"id": result.inserted_id})

    async def insert_once(self, doc: NotificationDoc) -> Optional[NotificationDoc]:
        """Insert unless a notification with the same dispatch_key exists.

        Returns None for a duplicate; the unique index makes the check
        race-free across concurrent dispatches of the same request.
        """
        try:
            return await self.insert(doc)
        except DuplicateKeyError:
            return None

    async def find_by_dispatch_key(self, key: str) -> Optional[NotificationDoc]:
        return NotificationDoc.from_mongo(await self._col.find_one({"dispatch_key": key}))

    async def list_for_user(
        self, user_id: Any, *, limit: int = 50, unread_only: bool = False
    ) -> list[NotificationDoc]:
        query: dict = {"user_id": parse_object_id(user_id)}
        if unread_only:
            query["read"] = False
        cursor = self._col.find(query).sort("created_at", DESCENDING).limit(limit)
        return [NotificationDoc.from_mongo(raw) async for raw in cursor]

    async def mark_read(self, notification_id: Any, user_id: Any) -> bool:
        """Flip read for the user's own notification. False if not theirs / missing."""
        oid = parse_object_id(notification_id)
        if oid is None:
            return False
        result = await self._col.update_one(
            {"_id": oid, "user_id": parse_object_id(user_id)},
            {"$set": {"read": True}},
        )
        return result.matched_count == 1

    async def mark_all_read(self, user_id: Any) -> int:
        result = await self._col.update_many(
            {"user_id": parse_object_id(user_id), "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count

    async def count_unread(self, user_id: Any) -> int:
        return await self._col.count_documents(
            {"user_id": parse_object_id(user_id), "read": False}
        )


class DeliveryAttemptRepository:
    collection_name = "delivery-attempts"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def record(self, doc: DeliveryAttemptDoc) -> None:
        await self._col.insert_one(doc.to_mongo())

    async def list_for_notification(self, notification_id: Any) -> list[DeliveryAttemptDoc]:
        cursor = self._col.find({"notification_id": parse_object_id(notification_id)})
        return [DeliveryAttemptDoc.from_mongo(raw) async for raw in cursor]
