"""Unit tests for services.donation_service."""

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from config import DispatchSettings
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from infrastructure.realtime.protocol import user_room
from schemas.models.blood_request import MatchedDonor
from schemas.models.donation import ConfirmingParty, DonationDoc, DonationStatus
from services.dispatcher import NotificationDispatcher
from services.donation_service import (
    DonationService,
    apply_confirmation,
    apply_dispute,
    derive_status,
)

from fakes import (
    FakeBloodRequestRepository,
    FakeDeliveryAttemptRepository,
    FakeDonationRepository,
    FakeDonorDirectory,
    FakeNotificationRepository,
    FakeSmsProvider,
    RecordingRealtimeChannel,
    make_donor,
    make_request,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _donation(**overrides) -> DonationDoc:
    base = dict(
        _id=ObjectId(),
        request_id=ObjectId(),
        donor_id=ObjectId(),
        recipient_id=ObjectId(),
        blood_type="O-",
        donation_date=NOW,
    )
    base.update(overrides)
    return DonationDoc.model_validate(base)


class World:
    def __init__(self, required_units=1, pending_donors=0):
        self.donor = make_donor()
        self.waiting = [make_donor(phone_number=f"+2224500010{i}") for i in range(pending_donors)]
        self.request = make_request(
            required_units=required_units,
            matched_donors=[
                MatchedDonor(donor_id=d.id, donor_blood_type="O-").model_dump()
                for d in self.waiting
            ],
        )
        self.requests = FakeBloodRequestRepository(self.request)
        self.donations = FakeDonationRepository()
        self.directory = FakeDonorDirectory(self.donor, *self.waiting)
        self.notifications = FakeNotificationRepository()
        self.realtime = RecordingRealtimeChannel()
        dispatcher = NotificationDispatcher(
            self.notifications,
            FakeDeliveryAttemptRepository(),
            self.requests,
            FakeSmsProvider(),
            self.realtime,
            DispatchSettings(),
        )
        self.service = DonationService(
            self.donations,
            self.requests,
            self.directory,
            dispatcher,
            clock=lambda: NOW,
        )

    async def accepted(self) -> DonationDoc:
        return await self.service.create_for_acceptance(self.request, self.donor)

    @property
    def recipient_id(self):
        return self.request.requester_id


class TestDeriveStatus:
    @pytest.mark.parametrize(
        "donor, recipient, expected",
        [
            (False, False, DonationStatus.PENDING),
            (True, False, DonationStatus.DONOR_CONFIRMED),
            (False, True, DonationStatus.PENDING),
            (True, True, DonationStatus.COMPLETED),
        ],
    )
    def test_table(self, donor, recipient, expected):
        assert derive_status(donor, recipient) is expected


class TestApplyConfirmation:
    def test_donor_first(self):
        updated, changed = apply_confirmation(_donation(), ConfirmingParty.DONOR, NOW)
        assert changed is True
        assert updated.status == "donor_confirmed"
        assert updated.donor_confirmed_at == NOW
        assert updated.recipient_confirmed is False

    def test_recipient_first_stays_pending(self):
        updated, changed = apply_confirmation(_donation(), "recipient", NOW)
        assert changed is True
        assert updated.recipient_confirmed is True
        assert updated.status == "pending"

    def test_second_party_completes(self):
        donation = _donation(donor_confirmed=True, status="donor_confirmed")
        updated, _ = apply_confirmation(donation, ConfirmingParty.RECIPIENT, NOW)
        assert updated.status == "completed"

    def test_repeat_confirmation_is_noop(self):
        donation = _donation(donor_confirmed=True, status="donor_confirmed")
        updated, changed = apply_confirmation(donation, ConfirmingParty.DONOR, NOW)
        assert changed is False
        assert updated is donation

    def test_completed_is_noop(self):
        donation = _donation(
            donor_confirmed=True, recipient_confirmed=True, status="completed"
        )
        _, changed = apply_confirmation(donation, ConfirmingParty.DONOR, NOW)
        assert changed is False

    def test_disputed_rejected(self):
        with pytest.raises(ConflictError):
            apply_confirmation(_donation(status="disputed"), ConfirmingParty.DONOR, NOW)


class TestApplyDispute:
    def test_marks_disputed_with_reason(self):
        updated, changed = apply_dispute(_donation(), "never showed up", NOW)
        assert changed is True
        assert updated.status == "disputed"
        assert updated.dispute_reason == "never showed up"

    def test_already_disputed_is_noop(self):
        _, changed = apply_dispute(_donation(status="disputed"), None, NOW)
        assert changed is False

    def test_completed_rejected(self):
        donation = _donation(
            donor_confirmed=True, recipient_confirmed=True, status="completed"
        )
        with pytest.raises(ConflictError):
            apply_dispute(donation, None, NOW)


class TestCreateForAcceptance:
    async def test_links_request_donor_and_recipient(self):
        w = World()
        donation = await w.accepted()
        assert donation.request_id == w.request.id
        assert donation.donor_id == w.donor.id
        assert donation.recipient_id == w.recipient_id
        assert donation.blood_type == "O-"
        assert donation.hospital == "Centre Hospitalier National"
        assert donation.status == "pending"

    async def test_idempotent_per_match(self):
        w = World()
        first = await w.accepted()
        second = await w.accepted()
        assert first.id == second.id
        assert len(w.donations.donations) == 1


class TestConfirm:
    async def test_donor_then_recipient_completes_request(self):
        w = World(required_units=1)
        donation = await w.accepted()

        after_donor = await w.service.confirm(
            donation.id, ConfirmingParty.DONOR, actor_id=w.donor.id
        )
        assert after_donor.status == "donor_confirmed"
        assert [n.user_id for n in w.notifications.items] == [w.recipient_id]

        done = await w.service.confirm(
            donation.id, ConfirmingParty.RECIPIENT, actor_id=w.recipient_id
        )
        assert done.status == "completed"

        request = await w.requests.get(w.request.id)
        assert request.fulfilled_units == 1
        assert request.status == "fulfilled"
        assert w.directory.donations_recorded == [(str(w.donor.id), NOW)]

    async def test_partial_fulfilment_keeps_request_active(self):
        w = World(required_units=2)
        donation = await w.accepted()
        await w.service.confirm(donation.id, "donor")
        await w.service.confirm(donation.id, "recipient")

        request = await w.requests.get(w.request.id)
        assert request.fulfilled_units == 1
        assert request.status == "active"

    async def test_fulfilment_notifies_pending_matches(self):
        w = World(required_units=1, pending_donors=2)
        donation = await w.accepted()
        await w.service.confirm(donation.id, "donor")
        await w.service.confirm(donation.id, "recipient")

        general = [n for n in w.notifications.items if n.type == "general"]
        assert sorted(str(n.user_id) for n in general) == sorted(
            str(d.id) for d in w.waiting
        )
        assert set(w.realtime.rooms()) >= {user_room(d.id) for d in w.waiting}

    async def test_repeat_confirmation_sends_nothing(self):
        w = World()
        donation = await w.accepted()
        await w.service.confirm(donation.id, "donor")
        again = await w.service.confirm(donation.id, "donor")

        assert again.status == "donor_confirmed"
        assert len(w.notifications.items) == 1

    async def test_completion_counted_once(self):
        w = World(required_units=2)
        donation = await w.accepted()
        await w.service.confirm(donation.id, "donor")
        await w.service.confirm(donation.id, "recipient")
        await w.service.confirm(donation.id, "recipient")

        assert (await w.requests.get(w.request.id)).fulfilled_units == 1
        assert len(w.directory.donations_recorded) == 1

    async def test_wrong_actor_forbidden(self):
        w = World()
        donation = await w.accepted()
        with pytest.raises(ForbiddenError):
            await w.service.confirm(
                donation.id, ConfirmingParty.DONOR, actor_id=w.recipient_id
            )
        with pytest.raises(ForbiddenError):
            await w.service.confirm(
                donation.id, ConfirmingParty.RECIPIENT, actor_id=ObjectId()
            )

    async def test_invalid_party(self):
        w = World()
        donation = await w.accepted()
        with pytest.raises(ValidationError) as exc_info:
            await w.service.confirm(donation.id, "nurse")
        assert exc_info.value.field == "party"

    async def test_unknown_donation(self):
        with pytest.raises(NotFoundError):
            await World().service.confirm(ObjectId(), "donor")

    async def test_lost_race_is_retried(self):
        w = World()
        donation = await w.accepted()
        w.donations.lose_races = 2
        confirmed = await w.service.confirm(donation.id, "donor")
        assert confirmed.status == "donor_confirmed"

    async def test_persistent_conflict_surfaces(self):
        w = World()
        donation = await w.accepted()
        w.donations.lose_races = 3
        with pytest.raises(ConflictError):
            await w.service.confirm(donation.id, "donor")
        assert (await w.donations.get(donation.id)).status == "pending"

    async def test_disputed_cannot_be_confirmed(self):
        w = World()
        donation = await w.accepted()
        await w.service.dispute(donation.id, "no show")
        with pytest.raises(ConflictError):
            await w.service.confirm(donation.id, "donor")


class TestDispute:
    async def test_notifies_counterpart_only(self):
        w = World()
        donation = await w.accepted()
        disputed = await w.service.dispute(
            donation.id, "  did not happen  ", actor_id=w.recipient_id
        )

        assert disputed.status == "disputed"
        assert disputed.dispute_reason == "did not happen"
        assert [n.user_id for n in w.notifications.items] == [w.donor.id]

    async def test_without_actor_notifies_both(self):
        w = World()
        donation = await w.accepted()
        await w.service.dispute(donation.id)
        assert {str(n.user_id) for n in w.notifications.items} == {
            str(w.donor.id),
            str(w.recipient_id),
        }

    async def test_reason_truncated(self):
        w = World()
        donation = await w.accepted()
        disputed = await w.service.dispute(donation.id, "x" * 800)
        assert len(disputed.dispute_reason) == 500

    async def test_blank_reason_dropped(self):
        w = World()
        donation = await w.accepted()
        disputed = await w.service.dispute(donation.id, "   ")
        assert disputed.dispute_reason is None

    async def test_outsider_forbidden(self):
        w = World()
        donation = await w.accepted()
        with pytest.raises(ForbiddenError):
            await w.service.dispute(donation.id, actor_id=ObjectId())

    async def test_completed_cannot_be_disputed(self):
        w = World()
        donation = await w.accepted()
        await w.service.confirm(donation.id, "donor")
        await w.service.confirm(donation.id, "recipient")
        with pytest.raises(ConflictError):
            await w.service.dispute(donation.id, "late")

    async def test_second_dispute_is_noop(self):
        w = World()
        donation = await w.accepted()
        await w.service.dispute(donation.id, "first")
        sent = len(w.notifications.items)
        again = await w.service.dispute(donation.id, "second")
        assert again.dispute_reason == "first"
        assert len(w.notifications.items) == sent
