"""Persistence for donations (`donations`). Records are never deleted."""

from __future__ import annotations

from typing import Any, Optional

from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from schemas.models.base import parse_object_id
from schemas.models.donation import DonationDoc


class DonationRepository:
    collection_name = "donations"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def get(self, donation_id: Any) -> Optional[DonationDoc]:
        oid = parse_object_id(donation_id)
        if oid is None:
            return None
        return DonationDoc.from_mongo(await self._col.find_one({"_id": oid}))

    async def find_for_match(self, request_id: Any, donor_id: Any) -> Optional[DonationDoc]:
        raw = await self._col.find_one(
            {
                "request_id": parse_object_id(request_id),
                "donor_id": parse_object_id(donor_id),
            }
        )
        return DonationDoc.from_mongo(raw)

    async def insert(self, doc: DonationDoc) -> DonationDoc:
        """Insert *doc*; if the (request, donor) pair exists, return the stored one."""
        try:
            result = await self._col.insert_one(doc.to_mongo())
        except DuplicateKeyError:
            return await self.find_for_match(doc.request_id, doc.donor_id)
        return doc.model_copy(update={"id": result.inserted_id})

    async def compare_and_set(self, previous: DonationDoc, updated: DonationDoc) -> bool:
        """Write *updated* only if the stored confirmation state still equals *previous*."""
        fields = updated.to_mongo()
        fields.pop("_id", None)
        result = await self._col.update_one(
            {
                "_id": previous.id,
                "status": previous.status,
                "donor_confirmed": previous.donor_confirmed,
                "recipient_confirmed": previous.recipient_confirmed,
            },
            {"$set": fields},
        )
        return result.modified_count == 1
