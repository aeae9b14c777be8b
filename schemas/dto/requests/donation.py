"""
Request DTOs for blood request responses and donation actions.

RespondRequest   — POST /blood-requests/{id}/respond
ConfirmRequest   — POST /donations/{id}/confirm
DisputeRequest   — POST /donations/{id}/dispute
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.models.donation import ConfirmingParty


class RespondRequest(BaseModel):
    """Request body for POST /blood-requests/{id}/respond."""

    model_config = ConfigDict(populate_by_name=True)

    accept: bool
    message: Optional[str] = Field(default=None, max_length=500)


class ConfirmRequest(BaseModel):
    """Request body for POST /donations/{id}/confirm."""

    model_config = ConfigDict(populate_by_name=True)

    party: ConfirmingParty


class DisputeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: Optional[str] = Field(default=None, max_length=500)
