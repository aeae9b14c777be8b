"""
Donation confirmation state machine.

A donation is confirmed independently by the donor and by the recipient
(the requester). Status is always recomputed from the two flags:

    donor  recipient   status
    -----  ---------   ---------------
    no     no          pending
    yes    no          donor_confirmed
    no     yes         pending
    yes    yes         completed

``disputed`` is entered only through apply_dispute() and is terminal for
confirmations. Writes are compare-and-set on the previous confirmation
state, so two parties confirming at once cannot lose an update.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from repositories.blood_request_repository import BloodRequestRepository
from repositories.donation_repository import DonationRepository
from repositories.donor_directory import DonorDirectory
from schemas.models.base import utc_now
from schemas.models.blood_request import BloodRequestDoc, MatchStatus, RequestStatus
from schemas.models.donation import ConfirmingParty, DonationDoc, DonationStatus
from schemas.models.donor import DonorProfile
from services.dispatcher import NotificationDispatcher
from services.notification_content import (
    donation_update_content,
    request_fulfilled_content,
)
from shared.logging import get_logger

log = get_logger(__name__)

MAX_WRITE_ATTEMPTS = 3
MAX_DISPUTE_REASON_LENGTH = 500


def derive_status(donor_confirmed: bool, recipient_confirmed: bool) -> DonationStatus:
    if donor_confirmed and recipient_confirmed:
        return DonationStatus.COMPLETED
    if donor_confirmed:
        return DonationStatus.DONOR_CONFIRMED
    return DonationStatus.PENDING


def apply_confirmation(
    donation: DonationDoc, party: ConfirmingParty, now: datetime
) -> tuple[DonationDoc, bool]:
    """Return (donation with *party* confirmed, whether anything changed)."""
    party = ConfirmingParty(party)
    if donation.status == DonationStatus.DISPUTED.value:
        raise ConflictError("Disputed donations cannot be confirmed", field="status")
    if donation.status == DonationStatus.COMPLETED.value:
        return donation, False

    if party is ConfirmingParty.DONOR:
        if donation.donor_confirmed:
            return donation, False
        update = {"donor_confirmed": True, "donor_confirmed_at": now}
        donor_confirmed, recipient_confirmed = True, donation.recipient_confirmed
    else:
        if donation.recipient_confirmed:
            return donation, False
        update = {"recipient_confirmed": True, "recipient_confirmed_at": now}
        donor_confirmed, recipient_confirmed = donation.donor_confirmed, True

    update["status"] = derive_status(donor_confirmed, recipient_confirmed).value
    update["updated_at"] = now
    return donation.model_copy(update=update), True


def apply_dispute(
    donation: DonationDoc, reason: Optional[str], now: datetime
) -> tuple[DonationDoc, bool]:
    if donation.status == DonationStatus.COMPLETED.value:
        raise ConflictError("Completed donations cannot be disputed", field="status")
    if donation.status == DonationStatus.DISPUTED.value:
        return donation, False
    return (
        donation.model_copy(
            update={
                "status": DonationStatus.DISPUTED.value,
                "dispute_reason": reason,
                "updated_at": now,
            }
        ),
        True,
    )


class DonationService:
    def __init__(
        self,
        donations: DonationRepository,
        requests: BloodRequestRepository,
        directory: DonorDirectory,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._donations = donations
        self._requests = requests
        self._directory = directory
        self._dispatcher = dispatcher
        self._clock = clock

    async def create_for_acceptance(
        self, request: BloodRequestDoc, donor: DonorProfile
    ) -> DonationDoc:
        now = self._clock()
        donation = await self._donations.insert(
            DonationDoc(
                request_id=request.id,
                donor_id=donor.id,
                recipient_id=request.requester_id,
                blood_type=donor.blood_type,
                hospital=request.hospital.name or None,
                donation_date=now,
                status=DonationStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        )
        log.info(
            "donation_created",
            donation_id=str(donation.id),
            request_id=str(request.id),
            donor_id=str(donor.id),
        )
        return donation

    async def _load(self, donation_id: Any) -> DonationDoc:
        donation = await self._donations.get(donation_id)
        if donation is None:
            raise NotFoundError("Donation not found")
        return donation

    @staticmethod
    def _authorize(
        donation: DonationDoc, actor_id: Any, party: Optional[ConfirmingParty]
    ) -> None:
        if actor_id is None:
            return
        actor = str(actor_id)
        if party is None:
            if actor not in (str(donation.donor_id), str(donation.recipient_id)):
                raise ForbiddenError("Only the donor or recipient can do this")
            return
        expected = (
            donation.donor_id
            if ConfirmingParty(party) is ConfirmingParty.DONOR
            else donation.recipient_id
        )
        if actor != str(expected):
            role = ConfirmingParty(party).value
            raise ForbiddenError(f"Only the {role} can confirm as {role}")

    async def _transition(self, donation_id: Any, apply) -> tuple[DonationDoc, bool]:
        """Apply *apply* with compare-and-set, reloading on a lost race."""
        for _ in range(MAX_WRITE_ATTEMPTS):
            current = await self._load(donation_id)
            updated, changed = apply(current)
            if not changed:
                return current, False
            if await self._donations.compare_and_set(current, updated):
                return updated, True
            log.debug("donation_write_conflict", donation_id=str(donation_id))
        raise ConflictError("Donation was modified concurrently, please retry")

    async def confirm(
        self, donation_id: Any, party: ConfirmingParty, actor_id: Any = None
    ) -> DonationDoc:
        try:
            party = ConfirmingParty(party)
        except ValueError as e:
            raise ValidationError("party must be 'donor' or 'recipient'", field="party") from e

        self._authorize(await self._load(donation_id), actor_id, party)
        donation, changed = await self._transition(
            donation_id, lambda d: apply_confirmation(d, party, self._clock())
        )
        if not changed:
            return donation

        log.info(
            "donation_confirmed",
            donation_id=str(donation.id),
            party=party.value,
            status=donation.status,
        )
        counterpart = (
            donation.recipient_id if party is ConfirmingParty.DONOR else donation.donor_id
        )
        await self._dispatcher.notify_user(counterpart, donation_update_content(donation))

        if donation.status == DonationStatus.COMPLETED.value:
            await self._on_completed(donation)
        return donation

    async def dispute(
        self, donation_id: Any, reason: Optional[str] = None, actor_id: Any = None
    ) -> DonationDoc:
        if reason is not None:
            reason = reason.strip()[:MAX_DISPUTE_REASON_LENGTH] or None
        current = await self._load(donation_id)
        self._authorize(current, actor_id, None)

        donation, changed = await self._transition(
            donation_id, lambda d: apply_dispute(d, reason, self._clock())
        )
        if not changed:
            return donation

        log.warning(
            "donation_disputed",
            donation_id=str(donation.id),
            request_id=str(donation.request_id),
        )
        content = donation_update_content(donation)
        targets = {
            str(donation.donor_id): donation.donor_id,
            str(donation.recipient_id): donation.recipient_id,
        }
        if actor_id is not None:
            targets.pop(str(actor_id), None)
        for user_id in targets.values():
            await self._dispatcher.notify_user(user_id, content)
        return donation

    async def _on_completed(self, donation: DonationDoc) -> None:
        now = self._clock()
        request = await self._requests.add_fulfilled_unit(donation.request_id)
        await self._directory.record_donation(donation.donor_id, now)
        if request is None:
            log.info(
                "fulfilled_units_not_incremented",
                request_id=str(donation.request_id),
                donation_id=str(donation.id),
            )
            return

        log.info(
            "request_unit_fulfilled",
            request_id=str(request.id),
            fulfilled_units=request.fulfilled_units,
            required_units=request.required_units,
        )
        if request.status != RequestStatus.FULFILLED.value:
            return

        content = request_fulfilled_content(request)
        waiting = [
            m.donor_id
            for m in request.matched_donors
            if m.status == MatchStatus.PENDING.value
        ]
        for donor_id in waiting:
            await self._dispatcher.notify_user(donor_id, content)
        log.info(
            "request_fulfilled",
            request_id=str(request.id),
            notified_pending_donors=len(waiting),
        )
