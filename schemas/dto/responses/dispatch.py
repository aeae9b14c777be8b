"""
Response DTOs for the dispatch pipeline.

ChannelOutcome        — result of delivering one notification on one channel
DonorDispatchResult   — everything that happened for one donor
DispatchSummary       — POST /blood-requests/{id}/dispatch  (200)

The summary reports per-donor, per-channel outcomes; there is deliberately no
single success flag for the whole batch.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.notification import Channel, DeliveryStatus


class DonorDispatchStatus(str, Enum):
    NOTIFIED = "notified"  # record stored, at least one channel reached the donor
    DUPLICATE = "duplicate"  # already notified for this request, nothing sent
    IN_FLIGHT = "in_flight"  # still running when the dispatch timeout elapsed
    FAILED = "failed"  # record stored (if possible) but every channel failed


class ChannelOutcome(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    channel: Channel
    status: DeliveryStatus
    provider_id: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    transient: bool = False  # last failure was retryable, retries ran out


class DonorDispatchResult(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    donor_id: str
    status: DonorDispatchStatus
    notification_id: Optional[str] = None
    distance_km: Optional[float] = None
    channels: list[ChannelOutcome] = []
    error: Optional[str] = None


class DispatchSummary(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    request_id: str
    radius_km: float = 0.0
    tier: int = 0
    total_candidates: int = 0
    notified: int = 0
    duplicates: int = 0
    in_flight: int = 0
    failed: int = 0
    timed_out: bool = False
    sms_delivery_mode: str = "live"
    results: list[DonorDispatchResult] = []
