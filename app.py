"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.realtime.redis_channel import (
    NullRealtimeChannel,
    RedisRealtimeChannel,
)
from infrastructure.session import JwtSessionIssuer
from infrastructure.sms.twilio import TwilioSmsProvider
from repositories.blood_request_repository import BloodRequestRepository
from repositories.donation_repository import DonationRepository
from repositories.donor_directory import MongoDonorDirectory
from repositories.indexes import ensure_indexes
from repositories.notification_repository import (
    DeliveryAttemptRepository,
    NotificationRepository,
)
from repositories.verification_repository import VerificationCodeRepository
from routes.auth_routes import router as auth_router
from routes.blood_request_routes import router as blood_request_router
from routes.donation_routes import router as donation_router
from routes.health_routes import router as health_router
from routes.notification_routes import router as notification_router
from services.blood_request_service import BloodRequestService
from services.dispatcher import NotificationDispatcher
from services.donation_service import DonationService
from services.donor_selector import DonorSelector
from services.notification_service import NotificationService
from services.rate_limiter import RateLimiter
from services.verification_service import VerificationService
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging.log_level, settings.logging.log_format)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            environment=settings.env,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.settings = settings

        # Redis is optional; without it limits are per-process and realtime is off
        redis_client = None
        if settings.redis.redis_uri:
            redis_client = aioredis.from_url(
                settings.redis.redis_uri,
                encoding="utf-8",
                decode_responses=True,
            )
        app.state.redis = redis_client

        await ensure_indexes(db)

        sms_provider = TwilioSmsProvider(
            settings.sms, allow_dev_fallback=settings.sms_dev_fallback_enabled
        )
        if sms_provider.delivery_mode != "live":
            log.warning(
                "sms_provider_not_live",
                delivery_mode=sms_provider.delivery_mode,
                env=settings.env,
            )
        app.state.sms_provider = sms_provider

        if settings.redis.redis_uri:
            realtime = RedisRealtimeChannel.from_url(
                settings.redis.redis_uri, settings.realtime
            )
        else:
            realtime = NullRealtimeChannel()

        requests = BloodRequestRepository(db[BloodRequestRepository.collection_name])
        notifications = NotificationRepository(
            db[NotificationRepository.collection_name]
        )
        directory = MongoDonorDirectory(db[MongoDonorDirectory.collection_name])

        dispatcher = NotificationDispatcher(
            notifications,
            DeliveryAttemptRepository(db[DeliveryAttemptRepository.collection_name]),
            requests,
            sms_provider,
            realtime,
            settings.dispatch,
        )
        donation_service = DonationService(
            DonationRepository(db[DonationRepository.collection_name]),
            requests,
            directory,
            dispatcher,
        )
        app.state.dispatcher = dispatcher
        app.state.donor_directory = directory
        app.state.donation_service = donation_service
        app.state.blood_request_service = BloodRequestService(
            requests,
            directory,
            DonorSelector(directory, settings.matching),
            dispatcher,
            donation_service,
        )
        app.state.notification_service = NotificationService(notifications, realtime)
        app.state.verification_service = VerificationService(
            VerificationCodeRepository(db[VerificationCodeRepository.collection_name]),
            RateLimiter.from_settings(settings.rate_limit, settings.redis.redis_uri),
            sms_provider,
            settings.verification,
        )

        app.state.session_issuer = None
        if settings.jwt.jwt_secret:
            app.state.session_issuer = JwtSessionIssuer(settings.jwt)
        elif settings.is_production:
            raise RuntimeError("JWT_SECRET must be set in production")
        else:
            log.warning("sessions_disabled", reason="jwt_secret_not_set")

        log.info(
            "app_started",
            env=settings.env,
            redis=redis_client is not None,
            sms_delivery_mode=sms_provider.delivery_mode,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await dispatcher.aclose(timeout=settings.dispatch.dispatch_timeout_seconds)
        await sms_provider.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(blood_request_router)
    app.include_router(donation_router)
    app.include_router(notification_router)

    return app
