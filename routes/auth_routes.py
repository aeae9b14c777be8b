"""
Phone authentication endpoints.

POST /auth/send-code    — issue a verification code by SMS
POST /auth/verify-code  — verify it and receive a session token
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from config import AppSettings
from dependencies import (
    get_donor_directory,
    get_session_issuer,
    get_settings,
    get_verification_service,
)
from infrastructure.session import SessionIssuer
from repositories.donor_directory import DonorDirectory
from schemas.dto.requests.auth import SendCodeRequest, VerifyCodeRequest
from schemas.dto.responses.auth import SendCodeResponse, VerifyCodeResponse
from services.verification_service import VerificationService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/send-code", response_model=SendCodeResponse)
async def send_code(
    body: SendCodeRequest,
    verification: VerificationService = Depends(get_verification_service),
) -> SendCodeResponse:
    result = await verification.issue(body.phone_number)
    return SendCodeResponse(
        phone_number=result.phone_number,
        expires_at=result.expires_at,
        simulated=result.simulated,
    )


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code(
    body: VerifyCodeRequest,
    verification: VerificationService = Depends(get_verification_service),
    issuer: SessionIssuer = Depends(get_session_issuer),
    directory: DonorDirectory = Depends(get_donor_directory),
    settings: AppSettings = Depends(get_settings),
) -> VerifyCodeResponse:
    claim = await verification.verify(body.phone_number, body.code)
    account = await directory.find_by_phone(claim.phone_number)
    token = issuer.issue(
        claim.phone_number, user_id=str(account.id) if account is not None else None
    )
    return VerifyCodeResponse(
        phone_number=claim.phone_number,
        verified_at=claim.verified_at,
        access_token=token,
        expires_in=settings.jwt.session_ttl_seconds,
    )
