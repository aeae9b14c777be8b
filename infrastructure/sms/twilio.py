"""Twilio implementation of SmsProvider over the REST API.

Uses the shared async HttpClient rather than the Twilio SDK; credentials come
from the injected SmsSettings.

When credentials are missing and the development fallback is enabled, the
message is logged and a synthetic ``dev_<ms>`` id is returned with
``simulated=True``. Callers record that as a simulated delivery, never as a
delivered one. With the fallback disabled (the production default) an
unconfigured provider fails permanently.
"""

from typing import Optional

import httpx

from config import SmsSettings
from errors import PermanentExternalError, TransientExternalError
from infrastructure.http_client import HttpClient
from infrastructure.sms.protocol import SmsResult
from shared.generators import generate_dev_delivery_id
from shared.logging import get_logger, mask_phone

log = get_logger(__name__)

_TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
_SERVICE = "sms"

# Twilio error codes that will never succeed on retry
# 21211 invalid 'To', 21408 region not enabled, 21610 unsubscribed recipient,
# 21614 not a mobile number, 30007 carrier filtered content
_PERMANENT_TWILIO_CODES = {21211, 21408, 21610, 21614, 30007}


class TwilioSmsProvider:
    def __init__(
        self,
        settings: SmsSettings,
        http_client: Optional[HttpClient] = None,
        allow_dev_fallback: bool = True,
    ) -> None:
        self._settings = settings
        self._allow_dev_fallback = allow_dev_fallback
        self._http = http_client
        if self._http is None and settings.is_configured:
            self._http = HttpClient(
                timeout=settings.sms_timeout_seconds,
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            )

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured

    @property
    def delivery_mode(self) -> str:
        """'live', 'development' (simulated) or 'disabled' — shown to operators."""
        if self.is_configured:
            return "live"
        return "development" if self._allow_dev_fallback else "disabled"

    def _messages_url(self) -> str:
        return (
            f"{_TWILIO_API_BASE}/Accounts/"
            f"{self._settings.twilio_account_sid}/Messages.json"
        )

    def _sender(self) -> str:
        return self._settings.sms_sender_id or self._settings.twilio_phone_number

    async def send(self, to: str, body: str) -> SmsResult:
        if not self.is_configured:
            if not self._allow_dev_fallback:
                log.error("sms_send_failed", reason="provider_not_configured")
                raise PermanentExternalError(
                    "SMS provider is not configured", service=_SERVICE
                )
            sid = generate_dev_delivery_id()
            log.warning(
                "sms_simulated",
                to=mask_phone(to),
                sid=sid,
                body=body,
                delivery_mode="development",
            )
            return SmsResult(id=sid, simulated=True)

        data = {"To": to, "From": self._sender(), "Body": body}
        try:
            response = await self._http.post(self._messages_url(), data=data)
        except httpx.TimeoutException as e:
            raise TransientExternalError(
                "SMS provider timed out", service=_SERVICE, details=str(e)
            ) from e
        except httpx.TransportError as e:
            raise TransientExternalError(
                "SMS provider unreachable", service=_SERVICE, details=str(e)
            ) from e

        if response.status_code in (200, 201):
            sid = response.json().get("sid", "")
            log.info("sms_sent_success", to=mask_phone(to), sid=sid)
            return SmsResult(id=sid)

        error_code, error_message = _parse_error(response)
        log.warning(
            "sms_sent_failed",
            to=mask_phone(to),
            status_code=response.status_code,
            twilio_code=error_code,
            response=error_message[:200],
        )
        if response.status_code == 429 or response.status_code >= 500:
            if error_code not in _PERMANENT_TWILIO_CODES:
                raise TransientExternalError(
                    error_message, service=_SERVICE, details={"code": error_code}
                )
        raise PermanentExternalError(
            error_message, service=_SERVICE, details={"code": error_code}
        )

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()


def _parse_error(response: httpx.Response) -> tuple[Optional[int], str]:
    try:
        payload = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    return payload.get("code"), payload.get("message") or f"HTTP {response.status_code}"
