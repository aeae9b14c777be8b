"""Integration tests for the HTTP routes, wired to in-memory repositories."""

from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import DispatchSettings, JWTSettings, MatchingSettings, VerificationSettings
from errors import register_error_handlers
from infrastructure.session import JwtSessionIssuer
from routes.auth_routes import router as auth_router
from routes.blood_request_routes import router as blood_request_router
from routes.donation_routes import router as donation_router
from routes.notification_routes import router as notification_router
from services.blood_request_service import BloodRequestService
from services.dispatcher import NotificationDispatcher
from services.donation_service import DonationService
from services.donor_selector import DonorSelector
from services.notification_service import NotificationService
from services.rate_limiter import RateLimiter, RateLimitRule, RateLimitScope
from services.verification_service import VerificationService

from fakes import (
    FakeBloodRequestRepository,
    FakeDeliveryAttemptRepository,
    FakeDonationRepository,
    FakeDonorDirectory,
    FakeNotificationRepository,
    FakeSmsProvider,
    FakeVerificationRepository,
    RecordingRealtimeChannel,
    make_donor,
    make_request,
)


class Backend:
    """Services over in-memory stores, shared between the app and the test."""

    def __init__(self, with_sessions: bool = True):
        self.requester = make_donor("AB+", phone_number="+22236000001")
        self.donor = make_donor("O-", km_north=2, phone_number="+22245000002")
        self.request = make_request(requester_id=self.requester.id)

        self.sms = FakeSmsProvider()
        self.realtime = RecordingRealtimeChannel()
        self.requests = FakeBloodRequestRepository(self.request)
        self.directory = FakeDonorDirectory(self.requester, self.donor)
        self.donations = FakeDonationRepository()
        self.notifications = FakeNotificationRepository()

        dispatcher = NotificationDispatcher(
            self.notifications,
            FakeDeliveryAttemptRepository(),
            self.requests,
            self.sms,
            self.realtime,
            DispatchSettings(),
        )
        donation_service = DonationService(
            self.donations, self.requests, self.directory, dispatcher
        )
        self.jwt = JWTSettings(jwt_secret="integration-secret", session_ttl_seconds=600)
        self.issuer = JwtSessionIssuer(self.jwt) if with_sessions else None

        self.state = dict(
            settings=SimpleNamespace(jwt=self.jwt),
            session_issuer=self.issuer,
            donor_directory=self.directory,
            donation_service=donation_service,
            blood_request_service=BloodRequestService(
                self.requests,
                self.directory,
                DonorSelector(self.directory, MatchingSettings(min_candidates=1)),
                dispatcher,
                donation_service,
            ),
            notification_service=NotificationService(self.notifications, self.realtime),
            verification_service=VerificationService(
                FakeVerificationRepository(),
                RateLimiter(
                    {
                        RateLimitScope.AUTH_ATTEMPT: RateLimitRule(5, 900),
                        RateLimitScope.CODE_ISSUANCE: RateLimitRule(3, 3600),
                    }
                ),
                self.sms,
                VerificationSettings(),
            ),
        )

    def auth(self, user) -> dict:
        token = self.issuer.issue(user.phone_number, user_id=str(user.id))
        return {"Authorization": f"Bearer {token}"}


def _build_app(backend: Backend) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for name, value in backend.state.items():
            setattr(app.state, name, value)
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(auth_router)
    app.include_router(blood_request_router)
    app.include_router(donation_router)
    app.include_router(notification_router)
    return app


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def client(backend):
    with TestClient(_build_app(backend)) as c:
        yield c


# ── Auth ──────────────────────────────────────────────────────────────────────


class TestPhoneAuth:
    def _last_code(self, backend) -> str:
        return backend.sms.sent[-1][1].split("Votre code de vérification: ")[1][:6]

    def test_send_then_verify_registered_user(self, client, backend):
        resp = client.post("/auth/send-code", json={"phone_number": "+22245000002"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["simulated"] is False
        assert "code" not in body

        resp = client.post(
            "/auth/verify-code",
            json={"phone_number": "+22245000002", "code": self._last_code(backend)},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 600
        claims = backend.issuer.decode(body["access_token"])
        assert claims["sub"] == str(backend.donor.id)

    def test_unregistered_phone_gets_phone_subject(self, client, backend):
        client.post("/auth/send-code", json={"phone_number": "+22245999999"})
        body = client.post(
            "/auth/verify-code",
            json={"phone_number": "+22245999999", "code": self._last_code(backend)},
        ).json()
        assert backend.issuer.decode(body["access_token"])["sub"] == "+22245999999"

        resp = client.get(
            "/notifications",
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )
        assert resp.status_code == 403

    def test_wrong_code(self, client):
        client.post("/auth/send-code", json={"phone_number": "+22245000002"})
        resp = client.post(
            "/auth/verify-code", json={"phone_number": "+22245000002", "code": "abc"}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_or_expired_code"

    def test_invalid_phone(self, client):
        resp = client.post("/auth/send-code", json={"phone_number": "12"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "phone_number"

    def test_issuance_rate_limited(self, client):
        for _ in range(3):
            client.post("/auth/send-code", json={"phone_number": "+22245000002"})
        resp = client.post("/auth/send-code", json={"phone_number": "+22245000002"})
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) > 0

    def test_sessions_not_configured(self):
        backend = Backend(with_sessions=False)
        with TestClient(_build_app(backend)) as client:
            client.post("/auth/send-code", json={"phone_number": "+22245000002"})
            code = backend.sms.sent[-1][1].split("Votre code de vérification: ")[1][:6]
            resp = client.post(
                "/auth/verify-code",
                json={"phone_number": "+22245000002", "code": code},
            )
        assert resp.status_code == 401


# ── Authentication guard ──────────────────────────────────────────────────────


class TestAuthGuard:
    def test_missing_token(self, client):
        resp = client.get("/notifications")
        assert resp.status_code == 401
        assert resp.json()["code"] == "authentication_error"

    def test_garbage_token(self, client):
        resp = client.get("/notifications", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# ── Requests and donations ────────────────────────────────────────────────────


class TestDonationFlow:
    def test_dispatch_respond_confirm(self, client, backend):
        request_id = str(backend.request.id)

        resp = client.post(
            f"/blood-requests/{request_id}/dispatch",
            headers=backend.auth(backend.requester),
        )
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["notified"] == 1
        assert summary["results"][0]["donor_id"] == str(backend.donor.id)

        resp = client.post(
            f"/blood-requests/{request_id}/respond",
            json={"accept": True, "message": "On my way"},
            headers=backend.auth(backend.donor),
        )
        assert resp.status_code == 200
        donation = resp.json()["donation"]
        assert resp.json()["status"] == "accepted"
        assert donation["status"] == "pending"

        resp = client.post(
            f"/donations/{donation['id']}/confirm",
            json={"party": "donor"},
            headers=backend.auth(backend.donor),
        )
        assert resp.json()["status"] == "donor_confirmed"

        resp = client.post(
            f"/donations/{donation['id']}/confirm",
            json={"party": "recipient"},
            headers=backend.auth(backend.requester),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert backend.requests.requests[request_id].status == "fulfilled"

    def test_only_requester_can_dispatch(self, client, backend):
        resp = client.post(
            f"/blood-requests/{backend.request.id}/dispatch",
            headers=backend.auth(backend.donor),
        )
        assert resp.status_code == 403

    def test_unknown_request(self, client, backend):
        resp = client.post(
            f"/blood-requests/{ObjectId()}/respond",
            json={"accept": True},
            headers=backend.auth(backend.donor),
        )
        assert resp.status_code == 404

    def test_double_response_conflicts(self, client, backend):
        url = f"/blood-requests/{backend.request.id}/respond"
        headers = backend.auth(backend.donor)
        assert client.post(url, json={"accept": False}, headers=headers).status_code == 200
        resp = client.post(url, json={"accept": True}, headers=headers)
        assert resp.status_code == 409

    def test_wrong_party_forbidden(self, client, backend):
        resp = client.post(
            f"/blood-requests/{backend.request.id}/respond",
            json={"accept": True},
            headers=backend.auth(backend.donor),
        )
        donation_id = resp.json()["donation"]["id"]
        resp = client.post(
            f"/donations/{donation_id}/confirm",
            json={"party": "recipient"},
            headers=backend.auth(backend.donor),
        )
        assert resp.status_code == 403

    def test_dispute(self, client, backend):
        resp = client.post(
            f"/blood-requests/{backend.request.id}/respond",
            json={"accept": True},
            headers=backend.auth(backend.donor),
        )
        donation_id = resp.json()["donation"]["id"]
        resp = client.post(
            f"/donations/{donation_id}/dispute",
            json={"reason": "No show"},
            headers=backend.auth(backend.requester),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "disputed"
        assert resp.json()["dispute_reason"] == "No show"

    def test_invalid_party_rejected_by_schema(self, client, backend):
        resp = client.post(
            f"/donations/{ObjectId()}/confirm",
            json={"party": "nurse"},
            headers=backend.auth(backend.donor),
        )
        assert resp.status_code == 422


# ── Notifications ─────────────────────────────────────────────────────────────


class TestNotifications:
    def _dispatch(self, client, backend):
        client.post(
            f"/blood-requests/{backend.request.id}/dispatch",
            headers=backend.auth(backend.requester),
        )

    def test_list_and_mark_read(self, client, backend):
        self._dispatch(client, backend)
        headers = backend.auth(backend.donor)

        body = client.get("/notifications", headers=headers).json()
        assert body["unread_count"] == 1
        item = body["items"][0]
        assert item["type"] == "blood_request"
        assert item["data"]["request_id"] == str(backend.request.id)

        resp = client.post(f"/notifications/{item['id']}/read", headers=headers)
        assert resp.status_code == 200
        assert client.get("/notifications", headers=headers).json()["unread_count"] == 0

    def test_read_all(self, client, backend):
        self._dispatch(client, backend)
        headers = backend.auth(backend.donor)
        resp = client.post("/notifications/read-all", headers=headers)
        assert resp.json() == {"success": True, "updated": 1}

    def test_cannot_read_someone_elses(self, client, backend):
        self._dispatch(client, backend)
        notification_id = str(backend.notifications.items[0].id)
        resp = client.post(
            f"/notifications/{notification_id}/read",
            headers=backend.auth(backend.requester),
        )
        assert resp.status_code == 404

    def test_limit_validated(self, client, backend):
        resp = client.get(
            "/notifications?limit=500", headers=backend.auth(backend.donor)
        )
        assert resp.status_code == 422
