"""
Notification text and payload builders.

Messages are bilingual (French / Arabic) like the rest of the product.
Everything here is pure; dispatching lives in services.dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from schemas.models.blood_request import BloodRequestDoc
from schemas.models.donation import DonationDoc, DonationStatus
from schemas.models.notification import (
    BloodRequestPayload,
    DonationUpdatePayload,
    GeneralPayload,
    NotificationPayload,
    NotificationType,
)
from shared.blood_types import UrgencyLevel

APP_NAME = "Munqidh - منقذ"

_URGENCY_MARK = {
    UrgencyLevel.CRITICAL.value: "🆘",
    UrgencyLevel.URGENT.value: "⚠️",
    UrgencyLevel.STANDARD.value: "🩸",
}


@dataclass(frozen=True)
class NotificationContent:
    type: NotificationType
    title: str
    message: str
    data: NotificationPayload
    urgent: bool = False


def verification_sms_body(code: str, valid_minutes: int) -> str:
    return (
        f"{APP_NAME}\n\n"
        f"Votre code de vérification: {code}\n"
        f"رمز التحقق الخاص بك: {code}\n\n"
        f"Valide {valid_minutes} min / صالح لمدة {valid_minutes} دقائق"
    )


def blood_request_content(
    request: BloodRequestDoc, distance_km: Optional[float] = None
) -> NotificationContent:
    blood_type = request.patient_info.blood_type
    mark = _URGENCY_MARK.get(request.urgency_level, "🩸")
    hospital = request.hospital.name or "—"
    return NotificationContent(
        type=NotificationType.BLOOD_REQUEST,
        title=f"{mark} {blood_type} blood needed",
        message=(
            f"{request.patient_info.name or 'A patient'} needs {blood_type} blood "
            f"at {hospital}. Can you help?"
        ),
        data=BloodRequestPayload(
            request_id=request.id,
            blood_type=blood_type,
            hospital=request.hospital.name,
            urgency=request.urgency_level,
            deadline=request.deadline,
            distance_km=round(distance_km, 1) if distance_km is not None else None,
        ),
        urgent=request.urgency_level == UrgencyLevel.CRITICAL.value,
    )


def blood_request_sms_body(request: BloodRequestDoc) -> str:
    blood_type = request.patient_info.blood_type
    mark = _URGENCY_MARK.get(request.urgency_level, "🩸")
    lines = [
        f"{mark} {APP_NAME}",
        "",
        f"Sang {blood_type} recherché! / مطلوب دم {blood_type}!",
        f"Hôpital / المستشفى: {request.hospital.name or '—'}",
    ]
    if request.contact_phone:
        lines.append(f"Contact / اتصال: {request.contact_phone}")
    lines += ["", "Ouvrez l'app pour répondre / افتح التطبيق للرد"]
    return "\n".join(lines)


_DONATION_STATUS_TEXT = {
    DonationStatus.PENDING.value: "A donor accepted your request.",
    DonationStatus.DONOR_CONFIRMED.value: "The donor confirmed the donation. Please confirm receipt.",
    DonationStatus.COMPLETED.value: "Donation fully confirmed. Thank you!",
    DonationStatus.DISPUTED.value: "A donation was disputed and is under review.",
}


def donation_update_content(donation: DonationDoc) -> NotificationContent:
    return NotificationContent(
        type=NotificationType.DONATION_UPDATE,
        title="Donation update",
        message=_DONATION_STATUS_TEXT[donation.status],
        data=DonationUpdatePayload(
            request_id=donation.request_id,
            donation_id=donation.id,
            status=donation.status,
        ),
    )


def request_fulfilled_content(request: BloodRequestDoc) -> NotificationContent:
    return NotificationContent(
        type=NotificationType.GENERAL,
        title="Request resolved",
        message=(
            f"The {request.patient_info.blood_type} request at "
            f"{request.hospital.name or 'the hospital'} has been fulfilled. "
            "Thank you for being ready to help."
        ),
        data=GeneralPayload(
            extra={"request_id": str(request.id), "status": request.status}
        ),
    )
