"""Request orchestration: fan-out on creation and donor responses."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from errors import ConflictError, NotFoundError, ValidationError
from repositories.blood_request_repository import BloodRequestRepository
from repositories.donor_directory import DonorDirectory
from schemas.dto.responses.dispatch import DispatchSummary
from schemas.models.base import utc_now
from schemas.models.blood_request import (
    BloodRequestDoc,
    MatchedDonor,
    MatchStatus,
    RequestStatus,
)
from schemas.models.donation import DonationDoc
from services.dispatcher import NotificationDispatcher
from services.donation_service import DonationService
from services.donor_selector import DonorSelector
from services.notification_content import donation_update_content
from shared.blood_types import can_donate
from shared.logging import get_logger

log = get_logger(__name__)

MAX_RESPONSE_MESSAGE_LENGTH = 500


@dataclass(frozen=True)
class DonorResponse:
    request_id: str
    donor_id: str
    status: MatchStatus
    responded_at: datetime
    donation: Optional[DonationDoc] = None


class BloodRequestService:
    def __init__(
        self,
        requests: BloodRequestRepository,
        directory: DonorDirectory,
        selector: DonorSelector,
        dispatcher: NotificationDispatcher,
        donations: DonationService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._requests = requests
        self._directory = directory
        self._selector = selector
        self._dispatcher = dispatcher
        self._donations = donations
        self._clock = clock

    async def get(self, request_id: Any) -> BloodRequestDoc:
        request = await self._requests.get(request_id)
        if request is None:
            raise NotFoundError("Blood request not found")
        return request

    async def request_created(self, request_id: Any) -> DispatchSummary:
        """Select donors for the request and notify them.

        Safe to call again for the same request: donors already listed on it
        are skipped by the selector and already-notified donors are caught
        by the dispatch key.
        """
        request = await self.get(request_id)
        selection = await self._selector.select(request)
        return await self._dispatcher.dispatch(request, selection)

    async def respond(
        self,
        request_id: Any,
        donor_id: Any,
        accept: bool,
        message: Optional[str] = None,
    ) -> DonorResponse:
        request = await self.get(request_id)
        if str(request.requester_id) == str(donor_id):
            raise ValidationError(
                "You cannot respond to your own request", field="donor_id"
            )
        if request.status != RequestStatus.ACTIVE.value:
            raise ConflictError(
                f"Request is {request.status}, not active", field="status"
            )

        entry = request.matched_donor(donor_id)
        if entry is not None and entry.status != MatchStatus.PENDING.value:
            raise ConflictError(
                f"You already {entry.status} this request", field="donor_id"
            )

        donor = await self._directory.get(donor_id)
        if donor is None:
            raise NotFoundError("Donor not found")
        if donor.blood_type is None or not can_donate(
            donor.blood_type, request.patient_info.blood_type
        ):
            raise ValidationError(
                "Your blood type is not compatible with this request",
                field="blood_type",
            )

        status = MatchStatus.ACCEPTED if accept else MatchStatus.DECLINED
        now = self._clock()
        if message is not None:
            message = message.strip()[:MAX_RESPONSE_MESSAGE_LENGTH] or None

        if entry is not None:
            updated = await self._requests.record_response(
                request.id, donor.id, status, now, message
            )
        else:
            updated = await self._requests.add_matched_donor(
                request.id,
                MatchedDonor(
                    donor_id=donor.id,
                    donor_name=donor.name,
                    donor_blood_type=donor.blood_type,
                    status=status,
                    responded_at=now,
                    message=message,
                ),
            )
        if not updated:
            # lost a race with another response or a status change
            raise ConflictError("Request changed while responding, please retry")

        log.info(
            "donor_responded",
            request_id=str(request.id),
            donor_id=str(donor.id),
            status=status.value,
        )

        donation = None
        if accept:
            donation = await self._donations.create_for_acceptance(request, donor)
            await self._dispatcher.notify_user(
                request.requester_id, donation_update_content(donation)
            )

        return DonorResponse(
            request_id=str(request.id),
            donor_id=str(donor.id),
            status=status,
            responded_at=now,
            donation=donation,
        )
