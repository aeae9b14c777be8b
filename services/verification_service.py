"""
Phone verification codes — issue and verify.

Issuance is rate limited per phone number, replaces any previous code for
that number, and sends the code by SMS. Verification is rate limited per
phone number too, compares hashes in constant time, and consumes the code
so it can be used once. Every verification failure surfaces as the same
InvalidOrExpiredCodeError; the actual reason is only logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from config import VerificationSettings
from errors import ExternalServiceError, InvalidOrExpiredCodeError, ValidationError
from infrastructure.sms.protocol import SmsProvider
from repositories.verification_repository import VerificationCodeRepository
from schemas.models.base import ensure_utc, utc_now
from schemas.models.verification import VerificationCodeDoc
from services.notification_content import verification_sms_body
from services.rate_limiter import RateLimiter, RateLimitScope
from shared.crypto import constant_time_equals, hash_token
from shared.generators import generate_otp_code
from shared.logging import get_logger, mask_phone
from shared.validators import normalize_phone_number, validate_verification_code

log = get_logger(__name__)


@dataclass(frozen=True)
class IssueResult:
    phone_number: str
    expires_at: datetime
    simulated: bool


@dataclass(frozen=True)
class PhoneClaim:
    """Proof that the caller controls *phone_number*, for session issuance."""

    phone_number: str
    verified_at: datetime


class VerificationService:
    def __init__(
        self,
        repository: VerificationCodeRepository,
        rate_limiter: RateLimiter,
        sms_provider: SmsProvider,
        settings: VerificationSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._limiter = rate_limiter
        self._sms = sms_provider
        self._settings = settings
        self._clock = clock

    @staticmethod
    def _normalize(phone_number: str) -> str:
        normalized = normalize_phone_number(phone_number)
        if normalized is None:
            raise ValidationError("Invalid phone number format", field="phone_number")
        return normalized

    async def issue(self, phone_number: str) -> IssueResult:
        phone = self._normalize(phone_number)
        await self._limiter.enforce(phone, RateLimitScope.CODE_ISSUANCE)

        code = generate_otp_code(self._settings.verification_code_length)
        now = self._clock()
        expires_at = now + timedelta(seconds=self._settings.verification_code_ttl_seconds)
        await self._repo.replace_for_phone(
            VerificationCodeDoc(
                phone_number=phone,
                code_hash=hash_token(code),
                expires_at=expires_at,
                verified=False,
                created_at=now,
            )
        )

        try:
            result = await self._sms.send(
                phone,
                verification_sms_body(
                    code, self._settings.verification_code_ttl_seconds // 60
                ),
            )
        except ExternalServiceError as e:
            log.error(
                "verification_code_delivery_failed",
                phone=mask_phone(phone),
                error=e.message,
                transient=e.transient,
            )
            raise

        log.info(
            "verification_code_issued",
            phone=mask_phone(phone),
            expires_at=expires_at.isoformat(),
            simulated=result.simulated,
        )
        return IssueResult(phone_number=phone, expires_at=expires_at, simulated=result.simulated)

    async def verify(self, phone_number: str, code: str) -> PhoneClaim:
        phone = self._normalize(phone_number)
        await self._limiter.enforce(phone, RateLimitScope.AUTH_ATTEMPT)

        reason = await self._check(phone, code)
        if reason is not None:
            log.warning("verification_failed", phone=mask_phone(phone), reason=reason)
            raise InvalidOrExpiredCodeError()

        await self._limiter.reset(phone, RateLimitScope.AUTH_ATTEMPT)
        verified_at = self._clock()
        log.info("verification_succeeded", phone=mask_phone(phone))
        return PhoneClaim(phone_number=phone, verified_at=verified_at)

    async def _check(self, phone: str, code: str) -> str | None:
        """Consume the code if it is valid; otherwise return why it was refused."""
        if not validate_verification_code(code or "", self._settings.verification_code_length):
            return "malformed"
        record = await self._repo.find_by_phone(phone)
        if record is None:
            return "not_found"
        if record.verified:
            return "already_used"
        if ensure_utc(record.expires_at) <= self._clock():
            return "expired"
        submitted_hash = hash_token(code)
        if not constant_time_equals(submitted_hash, record.code_hash):
            return "mismatch"
        if not await self._repo.consume(record.id, record.code_hash):
            return "already_used"
        return None
