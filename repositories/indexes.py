"""Index bootstrap for every collection the engine writes or queries."""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.database import AsyncDatabase

from repositories.blood_request_repository import BloodRequestRepository
from repositories.donation_repository import DonationRepository
from repositories.donor_directory import MongoDonorDirectory
from repositories.notification_repository import (
    DeliveryAttemptRepository,
    NotificationRepository,
)
from repositories.verification_repository import VerificationCodeRepository
from shared.logging import get_logger

log = get_logger(__name__)


async def ensure_indexes(db: AsyncDatabase) -> None:
    codes = db[VerificationCodeRepository.collection_name]
    await codes.create_index([("phone_number", ASCENDING)], unique=True)
    # TTL: MongoDB removes the record once expires_at passes
    await codes.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    requests = db[BloodRequestRepository.collection_name]
    await requests.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    await requests.create_index([("matched_donors.donor_id", ASCENDING)])

    donations = db[DonationRepository.collection_name]
    await donations.create_index(
        [("request_id", ASCENDING), ("donor_id", ASCENDING)], unique=True
    )
    await donations.create_index([("donor_id", ASCENDING), ("created_at", DESCENDING)])
    await donations.create_index(
        [("recipient_id", ASCENDING), ("created_at", DESCENDING)]
    )
    await donations.create_index([("status", ASCENDING)])

    notifications = db[NotificationRepository.collection_name]
    await notifications.create_index(
        [("dispatch_key", ASCENDING)], unique=True, sparse=True
    )
    await notifications.create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING)]
    )
    await notifications.create_index([("user_id", ASCENDING), ("read", ASCENDING)])

    attempts = db[DeliveryAttemptRepository.collection_name]
    await attempts.create_index([("notification_id", ASCENDING)])

    users = db[MongoDonorDirectory.collection_name]
    await users.create_index(
        [
            ("blood_type", ASCENDING),
            ("location.lat", ASCENDING),
            ("location.lng", ASCENDING),
        ]
    )

    log.info("indexes_ensured")
