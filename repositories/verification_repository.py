"""Persistence for phone verification codes (`verification-codes`)."""

from __future__ import annotations

from typing import Optional

from bson import ObjectId
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.verification import VerificationCodeDoc


class VerificationCodeRepository:
    collection_name = "verification-codes"

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def replace_for_phone(self, doc: VerificationCodeDoc) -> None:
        """Upsert the single live record for ``doc.phone_number``."""
        await self._col.replace_one(
            {"phone_number": doc.phone_number}, doc.to_mongo(), upsert=True
        )

    async def find_by_phone(self, phone_number: str) -> Optional[VerificationCodeDoc]:
        raw = await self._col.find_one({"phone_number": phone_number})
        return VerificationCodeDoc.from_mongo(raw)

    async def consume(self, code_id: ObjectId, code_hash: str) -> bool:
        """Mark the record verified and remove it.

        The update only matches an unverified record with the same hash, so
        two concurrent verifications of one code cannot both succeed, and a
        code re-issued in between is left alone.
        """
        claimed = await self._col.find_one_and_update(
            {"_id": code_id, "code_hash": code_hash, "verified": False},
            {"$set": {"verified": True}},
        )
        if claimed is None:
            return False
        await self._col.delete_one({"_id": code_id, "verified": True})
        return True
