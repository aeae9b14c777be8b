"""Session issuer — turns a verified phone claim into a signed JWT.

The token is opaque to the matching engine; only the HTTP layer decodes it to
identify the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

import jwt

from config import JWTSettings
from errors import AuthenticationError

_ALGORITHM = "HS256"
TOKEN_TYPE_PHONE_SESSION = "phone_session"


class SessionIssuer(Protocol):
    def issue(self, phone_number: str, user_id: Optional[str] = None) -> str: ...

    def decode(self, token: str) -> dict[str, Any]: ...


class JwtSessionIssuer:
    def __init__(self, settings: JWTSettings) -> None:
        if not settings.jwt_secret:
            raise ValueError("JWT_SECRET must be set to issue sessions")
        self._settings = settings

    def issue(self, phone_number: str, user_id: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        claims: dict[str, Any] = {
            "sub": user_id or phone_number,
            "phone_number": phone_number,
            "type": TOKEN_TYPE_PHONE_SESSION,
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "iat": now,
            "exp": now + timedelta(seconds=self._settings.session_ttl_seconds),
        }
        return jwt.encode(claims, self._settings.jwt_secret, algorithm=_ALGORITHM)

    def decode(self, token: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[_ALGORITHM],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
            )
        except jwt.PyJWTError as e:
            raise AuthenticationError("Invalid or expired session") from e
        if claims.get("type") != TOKEN_TYPE_PHONE_SESSION:
            raise AuthenticationError("Invalid or expired session")
        return claims
