"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Every tunable of the matching engine (tier radii, retry bounds, rate limits,
code TTL) lives here as a default so operators can change them without a
code change.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "bloodlink"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional — without Redis the rate limiter runs in-process and the
    # realtime channel becomes a no-op
    redis_uri: Optional[str] = None


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "bloodlink"
    jwt_audience: str = "bloodlink.app"
    jwt_secret: str = ""
    session_ttl_seconds: int = 2592000  # 30 days


class SmsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    # Alphanumeric sender shown on handsets; falls back to the phone number
    sms_sender_id: str = "Munqidh"
    sms_timeout_seconds: float = 5.0

    # None → allowed outside production, refused in production
    sms_allow_dev_fallback: Optional[bool] = None

    @property
    def is_configured(self) -> bool:
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )


class RealtimeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    realtime_channel_prefix: str = "realtime"
    realtime_reconnect_attempts: int = 3
    realtime_reconnect_backoff_seconds: float = 0.5


class VerificationSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    verification_code_length: int = Field(default=6, ge=4, le=10)
    verification_code_ttl_seconds: int = 600


class RateLimitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    auth_attempt_limit: int = 5
    auth_attempt_window_seconds: int = 900
    code_issuance_limit: int = 3
    code_issuance_window_seconds: int = 3600


class MatchingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Widening search radii in km; the last tier is the city-wide net
    search_radius_tiers_km: list[float] = [10.0, 25.0, 50.0]
    min_candidates: int = 5
    max_candidates: int = 50

    @model_validator(mode="after")
    def _check_tiers(self) -> "MatchingSettings":
        if not self.search_radius_tiers_km:
            raise ValueError("search_radius_tiers_km must not be empty")
        if any(r <= 0 for r in self.search_radius_tiers_km):
            raise ValueError("search radii must be positive")
        self.search_radius_tiers_km = sorted(self.search_radius_tiers_km)
        return self


class DispatchSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    dispatch_max_concurrency: int = Field(default=10, ge=1)
    dispatch_timeout_seconds: float = 30.0
    channel_call_timeout_seconds: float = 5.0
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_base_seconds: float = 0.5


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "bloodlink"

    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    sms: Optional[SmsSettings] = None
    realtime: Optional[RealtimeSettings] = None
    verification: Optional[VerificationSettings] = None
    rate_limit: Optional[RateLimitSettings] = None
    matching: Optional[MatchingSettings] = None
    dispatch: Optional[DispatchSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.sms is None:
            self.sms = SmsSettings()
        if self.realtime is None:
            self.realtime = RealtimeSettings()
        if self.verification is None:
            self.verification = VerificationSettings()
        if self.rate_limit is None:
            self.rate_limit = RateLimitSettings()
        if self.matching is None:
            self.matching = MatchingSettings()
        if self.dispatch is None:
            self.dispatch = DispatchSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def sms_dev_fallback_enabled(self) -> bool:
        """Whether an unconfigured SMS provider may simulate deliveries."""
        explicit = self.sms.sms_allow_dev_fallback
        if explicit is not None:
            return explicit
        return not self.is_production
