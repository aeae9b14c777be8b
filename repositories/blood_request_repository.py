"""Persistence for blood requests (`blood-requests`).

The engine never rewrites a request wholesale; it appends to or updates the
embedded matched_donors list and bumps fulfilled_units, each as a single
guarded update so the request invariants hold under concurrent writers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.base import parse_object_id
from schemas.models.blood_request import (
    BloodRequestDoc,
    MatchedDonor,
    MatchStatus,
    RequestStatus,
)


class BloodRequestRepository:
    collection_name = "blood-requests"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def get(self, request_id: Any) -> Optional[BloodRequestDoc]:
        oid = parse_object_id(request_id)
        if oid is None:
            return None
        return BloodRequestDoc.from_mongo(await self._col.find_one({"_id": oid}))

    async def add_matched_donor(self, request_id: Any, entry: MatchedDonor) -> bool:
        """Append *entry* to an active request unless the donor is already
        listed or is the requester."""
        result = await self._col.update_one(
            {
                "_id": parse_object_id(request_id),
                "status": RequestStatus.ACTIVE.value,
                "requester_id": {"$ne": entry.donor_id},
                "matched_donors.donor_id": {"$ne": entry.donor_id},
            },
            {"$push": {"matched_donors": entry.model_dump()}},
        )
        return result.modified_count == 1

    async def record_response(
        self,
        request_id: Any,
        donor_id: Any,
        status: MatchStatus,
        responded_at: datetime,
        message: Optional[str] = None,
    ) -> bool:
        """Move a pending matched donor to accepted/declined.

        Returns False when the donor has no pending entry (never notified, or
        already responded).
        """
        result = await self._col.update_one(
            {
                "_id": parse_object_id(request_id),
                "status": RequestStatus.ACTIVE.value,
                "matched_donors": {
                    "$elemMatch": {
                        "donor_id": parse_object_id(donor_id),
                        "status": MatchStatus.PENDING.value,
                    }
                },
            },
            {
                "$set": {
                    "matched_donors.$.status": MatchStatus(status).value,
                    "matched_donors.$.responded_at": responded_at,
                    "matched_donors.$.message": message,
                }
            },
        )
        return result.modified_count == 1

    async def add_fulfilled_unit(
        self, request_id: Any, units: int = 1
    ) -> Optional[BloodRequestDoc]:
        """Add *units* (capped at required_units) and flip to fulfilled on reaching it.

        Returns the updated request, or None if it was not active or already
        complete.
        """
        raw = await self._col.find_one_and_update(
            {
                "_id": parse_object_id(request_id),
                "status": RequestStatus.ACTIVE.value,
                "$expr": {"$lt": ["$fulfilled_units", "$required_units"]},
            },
            [
                {
                    "$set": {
                        "fulfilled_units": {
                            "$min": [
                                "$required_units",
                                {"$add": ["$fulfilled_units", units]},
                            ]
                        }
                    }
                },
                {
                    "$set": {
                        "status": {
                            "$cond": [
                                {"$eq": ["$fulfilled_units", "$required_units"]},
                                RequestStatus.FULFILLED.value,
                                "$status",
                            ]
                        }
                    }
                },
            ],
            return_document=ReturnDocument.AFTER,
        )
        return BloodRequestDoc.from_mongo(raw)
