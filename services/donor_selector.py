"""
Donor selection for a blood request.

For each radius tier, smallest first:
  1. ask the directory for compatible donors inside the tier's bounding box,
  2. keep those within the exact Haversine radius,
  3. drop the requester, donors already matched, unavailable donors and
     donors whose preferences exclude this urgency or have no channel.
Stop at the first tier that yields ``min_candidates``; the last tier is
final. Candidates are ordered nearest first, ties by donor id, and capped
at ``max_candidates``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from config import MatchingSettings
from errors import ConflictError, ValidationError
from repositories.donor_directory import DonorDirectory
from schemas.models.blood_request import BloodRequestDoc, RequestStatus
from schemas.models.donor import DonorProfile
from schemas.models.notification import Channel
from shared.blood_types import can_donate, compatible_donor_types
from shared.geo import bounding_box, distance_km, within_radius
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class DonorCandidate:
    donor: DonorProfile
    distance_km: float
    channels: tuple[Channel, ...]

    @property
    def donor_id(self) -> str:
        return str(self.donor.id)


@dataclass
class SelectionResult:
    candidates: list[DonorCandidate] = field(default_factory=list)
    radius_km: float = 0.0
    tier: int = 0
    expanded: bool = False

    @property
    def donor_ids(self) -> list[str]:
        return [c.donor_id for c in self.candidates]


def enabled_channels(donor: DonorProfile) -> tuple[Channel, ...]:
    prefs = donor.notification_preferences
    channels: list[Channel] = []
    if prefs.sms and donor.phone_number:
        channels.append(Channel.SMS)
    if prefs.push:
        channels.append(Channel.REALTIME)
    return tuple(channels)


class DonorSelector:
    def __init__(self, directory: DonorDirectory, settings: MatchingSettings) -> None:
        self._directory = directory
        self._settings = settings

    async def select(self, request: BloodRequestDoc) -> SelectionResult:
        if request.status != RequestStatus.ACTIVE.value:
            raise ConflictError(
                f"Request is {request.status}, not active", field="status"
            )
        try:
            donor_types = compatible_donor_types(request.patient_info.blood_type)
        except ValueError as e:
            raise ValidationError(str(e), field="patient_info.blood_type") from e

        center = request.hospital.coordinates
        tiers = self._settings.search_radius_tiers_km
        result = SelectionResult()

        for tier, radius in enumerate(tiers):
            box = bounding_box(center.lat, center.lng, radius)
            donors = await self._directory.find_candidates(donor_types, box)
            candidates = self._filter(request, donors, radius)
            result = SelectionResult(
                candidates=candidates,
                radius_km=radius,
                tier=tier,
                expanded=tier > 0,
            )
            if len(candidates) >= self._settings.min_candidates:
                break
            if tier + 1 < len(tiers):
                log.info(
                    "donor_search_expanding",
                    request_id=str(request.id),
                    radius_km=radius,
                    found=len(candidates),
                    next_radius_km=tiers[tier + 1],
                )

        result.candidates = result.candidates[: self._settings.max_candidates]
        log.info(
            "donors_selected",
            request_id=str(request.id),
            urgency=request.urgency_level,
            blood_type=request.patient_info.blood_type,
            radius_km=result.radius_km,
            tier=result.tier,
            candidates=len(result.candidates),
        )
        return result

    def _filter(
        self, request: BloodRequestDoc, donors: list[DonorProfile], radius_km: float
    ) -> list[DonorCandidate]:
        center = request.hospital.coordinates
        excluded = request.matched_donor_ids | {str(request.requester_id)}
        seen: set[str] = set()
        candidates: list[DonorCandidate] = []

        for donor in donors:
            donor_id = str(donor.id)
            if donor_id in excluded or donor_id in seen:
                continue
            if donor.location is None or not donor.available_for_donation:
                continue
            if donor.blood_type is None or not can_donate(
                donor.blood_type, request.patient_info.blood_type
            ):
                continue
            point = (donor.location.lat, donor.location.lng)
            if not within_radius(center.lat, center.lng, *point, radius_km):
                continue
            distance = distance_km(center.lat, center.lng, *point)
            if request.urgency_level not in donor.notification_preferences.urgency_levels:
                continue
            channels = enabled_channels(donor)
            if not channels:
                continue
            seen.add(donor_id)
            candidates.append(DonorCandidate(donor, distance, channels))

        candidates.sort(key=lambda c: (c.distance_km, c.donor_id))
        return candidates
