"""
Donation confirmation endpoints.

POST /donations/{donation_id}/confirm  — donor or recipient confirms
POST /donations/{donation_id}/dispute  — either party disputes
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import CurrentUser, get_current_user, get_donation_service
from schemas.dto.requests.donation import ConfirmRequest, DisputeRequest
from schemas.dto.responses.donation import DonationResponse
from services.donation_service import DonationService

router = APIRouter(prefix="/donations", tags=["donations"])


@router.post("/{donation_id}/confirm", response_model=DonationResponse)
async def confirm_donation(
    donation_id: str,
    body: ConfirmRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DonationService = Depends(get_donation_service),
) -> DonationResponse:
    donation = await service.confirm(donation_id, body.party, actor_id=user.user_id)
    return DonationResponse.from_doc(donation)


@router.post("/{donation_id}/dispute", response_model=DonationResponse)
async def dispute_donation(
    donation_id: str,
    body: DisputeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DonationService = Depends(get_donation_service),
) -> DonationResponse:
    donation = await service.dispute(donation_id, body.reason, actor_id=user.user_id)
    return DonationResponse.from_doc(donation)
