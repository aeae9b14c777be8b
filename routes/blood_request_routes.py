"""
Blood request endpoints.

POST /blood-requests/{request_id}/dispatch  — select and notify donors
POST /blood-requests/{request_id}/respond   — donor accepts or declines
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dependencies import CurrentUser, get_blood_request_service, get_current_user
from errors import ForbiddenError
from schemas.dto.requests.donation import RespondRequest
from schemas.dto.responses.dispatch import DispatchSummary
from schemas.dto.responses.donation import DonationResponse, RespondResponse
from services.blood_request_service import BloodRequestService

router = APIRouter(prefix="/blood-requests", tags=["blood-requests"])


@router.post("/{request_id}/dispatch", response_model=DispatchSummary)
async def dispatch_request(
    request_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BloodRequestService = Depends(get_blood_request_service),
) -> DispatchSummary:
    request = await service.get(request_id)
    if str(request.requester_id) != user.user_id:
        raise ForbiddenError("Only the requester can dispatch this request")
    return await service.request_created(request_id)


@router.post("/{request_id}/respond", response_model=RespondResponse)
async def respond_to_request(
    request_id: str,
    body: RespondRequest,
    user: CurrentUser = Depends(get_current_user),
    service: BloodRequestService = Depends(get_blood_request_service),
) -> RespondResponse:
    result = await service.respond(request_id, user.user_id, body.accept, body.message)
    return RespondResponse(
        request_id=result.request_id,
        donor_id=result.donor_id,
        status=result.status.value,
        responded_at=result.responded_at,
        donation=DonationResponse.from_doc(result.donation) if result.donation else None,
    )
