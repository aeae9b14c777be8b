"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Services are built once in the app lifespan and
stored on app.state; these providers only hand them out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from errors import AuthenticationError, ForbiddenError
from infrastructure.session import SessionIssuer
from repositories.donor_directory import DonorDirectory
from schemas.models.base import parse_object_id
from services.blood_request_service import BloodRequestService
from services.donation_service import DonationService
from services.notification_service import NotificationService
from services.verification_service import VerificationService

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    phone_number: Optional[str] = None


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


async def get_redis(request: Request):
    """Return the async Redis client from app.state (may be None if not configured)."""
    return request.app.state.redis


def get_verification_service(request: Request) -> VerificationService:
    return request.app.state.verification_service


def get_blood_request_service(request: Request) -> BloodRequestService:
    return request.app.state.blood_request_service


def get_donation_service(request: Request) -> DonationService:
    return request.app.state.donation_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_donor_directory(request: Request) -> DonorDirectory:
    return request.app.state.donor_directory


def get_session_issuer(request: Request) -> SessionIssuer:
    issuer = request.app.state.session_issuer
    if issuer is None:
        raise AuthenticationError("Sessions are not configured")
    return issuer


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> CurrentUser:
    """Resolve the Bearer session token into the calling user.

    Sessions issued for a phone number with no registered account carry the
    phone number as subject; those callers cannot act on requests yet.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token")
    claims = issuer.decode(credentials.credentials)
    subject = claims.get("sub")
    if parse_object_id(subject) is None:
        raise ForbiddenError("Complete registration before using this endpoint")
    return CurrentUser(user_id=subject, phone_number=claims.get("phone_number"))
