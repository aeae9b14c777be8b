"""
Request DTOs for phone authentication endpoints.

SendCodeRequest    — POST /auth/send-code
VerifyCodeRequest  — POST /auth/verify-code
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SendCodeRequest(BaseModel):
    """Request body for POST /auth/send-code."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(min_length=1, max_length=32)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /auth/verify-code.

    ``code`` is the numeric code delivered by SMS. Format is checked by the
    verification service so that every failure looks the same to the caller.
    """

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(min_length=1, max_length=32)
    code: str = Field(max_length=16)
