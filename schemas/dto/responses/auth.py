"""
Response DTOs for phone authentication endpoints.

SendCodeResponse    — POST /auth/send-code  (200)
VerifyCodeResponse  — POST /auth/verify-code  (200)
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SendCodeResponse(BaseModel):
    """Response body for POST /auth/send-code. The code itself is never echoed."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    phone_number: str
    expires_at: datetime
    # True when the SMS provider is unconfigured and delivery was simulated
    simulated: bool = False


class VerifyCodeResponse(BaseModel):
    """Response body for POST /auth/verify-code (200)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    phone_number: str
    verified_at: datetime
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
