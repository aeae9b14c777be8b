"""Donor directory — read side of the `users` collection for matching.

The bounding box is pushed into the query as range filters on
location.lat / location.lng so the database prunes far-away donors before
anything is loaded; the exact radius check happens in the selector.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.base import parse_object_id
from schemas.models.donor import DonorProfile
from shared.blood_types import BloodType
from shared.geo import BoundingBox

_PROJECTION = {
    "name": 1,
    "phone_number": 1,
    "blood_type": 1,
    "location": 1,
    "notification_preferences": 1,
    "available_for_donation": 1,
    "total_donations": 1,
    "last_donation_date": 1,
}


class DonorDirectory(Protocol):
    async def find_candidates(
        self, blood_types: Iterable[BloodType], box: BoundingBox
    ) -> list[DonorProfile]: ...

    async def get(self, donor_id: Any) -> Optional[DonorProfile]: ...

    async def find_by_phone(self, phone_number: str) -> Optional[DonorProfile]: ...

    async def record_donation(self, donor_id: Any, donated_at: datetime) -> None: ...


class MongoDonorDirectory:
    collection_name = "users"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_candidates(
        self, blood_types: Iterable[BloodType], box: BoundingBox
    ) -> list[DonorProfile]:
        query = {
            "blood_type": {"$in": [BloodType(t).value for t in blood_types]},
            "location.lat": {"$gte": box.min_lat, "$lte": box.max_lat},
            "location.lng": {"$gte": box.min_lng, "$lte": box.max_lng},
            "available_for_donation": {"$ne": False},
        }
        cursor = self._col.find(query, _PROJECTION)
        return [DonorProfile.from_mongo(raw) async for raw in cursor]

    async def get(self, donor_id: Any) -> Optional[DonorProfile]:
        oid = parse_object_id(donor_id)
        if oid is None:
            return None
        return DonorProfile.from_mongo(await self._col.find_one({"_id": oid}, _PROJECTION))

    async def find_by_phone(self, phone_number: str) -> Optional[DonorProfile]:
        return DonorProfile.from_mongo(
            await self._col.find_one({"phone_number": phone_number}, _PROJECTION)
        )

    async def record_donation(self, donor_id: Any, donated_at: datetime) -> None:
        await self._col.update_one(
            {"_id": parse_object_id(donor_id)},
            {
                "$inc": {"total_donations": 1},
                "$set": {"last_donation_date": donated_at},
            },
        )
