"""Integration tests for the /auth routes, with in-memory repositories behind them."""

from __future__ import annotations

import re
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import AppSettings, OperatingMode, VerificationSettings
from errors import INVALID_TOKEN_MESSAGE, register_error_handlers
from routes.auth_routes import FORGOT_PASSWORD_MESSAGE
from routes.auth_routes import router as auth_router
from shared.crypto import verify_password

NEW_PASSWORD = "N3wPassword!"


@pytest.fixture
def settings(harness, monkeypatch) -> AppSettings:
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return AppSettings(env=harness.mode.value)


def _build_test_app(harness, settings: AppSettings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.verification_service = harness.service
        app.state.session_service = harness.session_service
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(auth_router)
    return app


@pytest.fixture
def client(harness, settings):
    with TestClient(_build_test_app(harness, settings)) as c:
        yield c


@pytest.fixture
def production_client(harness, monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    harness.mode = OperatingMode.PRODUCTION
    settings = AppSettings(env="production")
    with TestClient(_build_test_app(harness, settings)) as c:
        yield c


def _login(client, harness) -> dict:
    resp = client.post(
        "/auth/login", json={"email": "jane@example.com", "password": harness.user_password}
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


# ── Login ─────────────────────────────────────────────────────────────────────


class TestLogin:
    def test_success(self, client, harness, user):
        resp = client.post(
            "/auth/login",
            json={"email": "jane@example.com", "password": harness.user_password},
            headers={"User-Agent": "pytest-agent"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == str(user.id)
        assert body["user"]["email_verified"] is False
        [session] = harness.sessions.sessions.values()
        assert session.user_agent == "pytest-agent"

    def test_bad_credentials(self, client, user):
        resp = client.post(
            "/auth/login", json={"email": "jane@example.com", "password": "Wrong1234"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "authentication_error"

    def test_logout_revokes_only_the_calling_session(self, client, harness, user):
        other = _login(client, harness)
        headers = _login(client, harness)

        resp = client.post("/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "signed out"}

        assert client.get("/auth/sessions", headers=headers).status_code == 401
        assert client.get("/auth/sessions", headers=other).status_code == 200
        assert client.post("/auth/logout", headers=headers).status_code == 401

    def test_logout_requires_authentication(self, client):
        assert client.post("/auth/logout").status_code == 401


# ── Email verification ────────────────────────────────────────────────────────


class TestEmailVerification:
    def test_request_and_confirm_anonymously(self, client, harness, user):
        resp = client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["masked_destination"] == "j***e@example.com"
        assert body["expires_in"] == 600
        assert "dev_otp" not in body

        resp = client.post(
            "/auth/verify-email/confirm",
            json={"email": "jane@example.com", "otp": harness.email.last_otp()},
        )
        assert resp.status_code == 200
        assert resp.json()["already_verified"] is False
        assert harness.user(user.id).email_verified is True

    def test_request_with_bearer_needs_no_body(self, client, harness, user):
        headers = _login(client, harness)
        resp = client.post("/auth/verify-email/request", json={}, headers=headers)
        assert resp.status_code == 200
        assert harness.email.sent[-1][0] == "jane@example.com"

    def test_request_without_identity(self, client, user):
        resp = client.post("/auth/verify-email/request", json={})
        assert resp.status_code == 400
        assert resp.json()["field"] == "email"

    def test_throttled_request(self, client, user):
        client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        resp = client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        assert resp.status_code == 429
        assert resp.json()["code"] == "throttled"
        assert resp.headers["Retry-After"] == "30"

    def test_already_verified(self, client, harness):
        harness.add_user(email_verified=True)
        resp = client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        assert resp.status_code == 200
        assert resp.json()["already_verified"] is True
        assert harness.email.sent == []

    def test_unknown_email(self, client):
        resp = client.post("/auth/verify-email/request", json={"email": "ghost@example.com"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "subject_not_found"

    def test_dev_mode_failure_returns_code_inline(self, client, harness, user):
        harness.email.delivered = False
        resp = client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        assert resp.status_code == 200
        assert re.fullmatch(r"\d{6}", resp.json()["dev_otp"])

    def test_production_failure_is_503(self, production_client, harness, user):
        harness.email.delivered = False
        resp = production_client.post(
            "/auth/verify-email/request", json={"email": "jane@example.com"}
        )
        assert resp.status_code == 503
        assert resp.json()["code"] == "delivery_failed"
        assert "dev_otp" not in resp.text

    def test_wrong_code(self, client, harness, user):
        client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        wrong = "000000" if harness.email.last_otp() != "000000" else "111111"
        resp = client.post(
            "/auth/verify-email/confirm", json={"email": "jane@example.com", "code": wrong}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "token_mismatch"

    def test_expired_code_gets_blurred_message(self, client, harness, user):
        client.post("/auth/verify-email/request", json={"email": "jane@example.com"})
        harness.clock.advance(601)
        resp = client.post(
            "/auth/verify-email/confirm",
            json={"email": "jane@example.com", "otp": harness.email.last_otp()},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": INVALID_TOKEN_MESSAGE, "code": "token_expired"}

    def test_configured_otp_length_is_accepted(self, harness, settings, user):
        harness.settings = VerificationSettings(otp_length=8)
        harness.email.delivered = False
        with TestClient(_build_test_app(harness, settings)) as client:
            sent = client.post("/auth/verify-email/request", json={"email": user.email})
            code = sent.json()["dev_otp"]
            assert len(code) == 8

            resp = client.post(
                "/auth/verify-email/confirm", json={"email": user.email, "otp": code}
            )
        assert resp.status_code == 200
        assert harness.user(user.id).email_verified is True

    def test_malformed_code_rejected_by_schema(self, client, user):
        resp = client.post(
            "/auth/verify-email/confirm", json={"email": "jane@example.com", "otp": "12ab"}
        )
        assert resp.status_code == 422


# ── Phone verification ────────────────────────────────────────────────────────


class TestPhoneVerification:
    def test_requires_authentication(self, client, user):
        assert client.post("/auth/verify-phone/request").status_code == 401
        resp = client.post(
            "/auth/verify-phone/request", headers={"Authorization": "Bearer bogus"}
        )
        assert resp.status_code == 401

    def test_request_and_confirm(self, client, harness, user):
        headers = _login(client, harness)
        resp = client.post("/auth/verify-phone/request", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["masked_destination"] == "+*********67"

        resp = client.post(
            "/auth/verify-phone/confirm",
            json={"otp": harness.sms.last_otp()},
            headers=headers,
        )
        assert resp.status_code == 200
        assert harness.user(user.id).phone_verified is True


# ── Password reset ────────────────────────────────────────────────────────────


class TestPasswordReset:
    @pytest.mark.parametrize("email", ["jane@example.com", "ghost@example.com"])
    def test_forgot_is_generic(self, production_client, user, email):
        resp = production_client.post("/auth/password/forgot", json={"email": email})
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": FORGOT_PASSWORD_MESSAGE,
            "already_verified": False,
        }

    def test_forgot_is_generic_when_throttled_or_failing(self, production_client, harness, user):
        first = production_client.post("/auth/password/forgot", json={"email": user.email})
        harness.email.delivered = False
        harness.clock.advance(61)
        failed = production_client.post("/auth/password/forgot", json={"email": user.email})
        throttled = production_client.post("/auth/password/forgot", json={"email": user.email})
        assert first.json() == failed.json() == throttled.json()
        assert {r.status_code for r in (first, failed, throttled)} == {200}

    def test_forgot_in_development_exposes_link_on_failure(self, client, harness, user):
        harness.email.delivered = False
        resp = client.post("/auth/password/forgot", json={"email": user.email})
        assert resp.json()["dev_preview_url"].startswith("https://localjobs.test/reset?token=")

    def test_full_reset_flow_revokes_sessions(self, client, harness, user):
        headers = _login(client, harness)
        client.post("/auth/password/forgot", json={"email": user.email})
        token = harness.email.last_reset_token()

        resp = client.post("/auth/password/reset/verify", json={"token": token})
        assert resp.status_code == 200
        assert resp.json() == {"valid": True, "masked_email": "j***e@example.com", "expires_in": 900}

        resp = client.post(
            "/auth/password/reset", json={"token": token, "new_password": NEW_PASSWORD}
        )
        assert resp.status_code == 200
        assert resp.json()["sessions_revoked"] == 1
        assert verify_password(NEW_PASSWORD, harness.user(user.id).password_hash)

        assert client.get("/auth/sessions", headers=headers).status_code == 401

        resp = client.post(
            "/auth/password/reset", json={"token": token, "new_password": NEW_PASSWORD}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "token_already_used"

    def test_weak_password_is_422_with_details(self, client, harness, user):
        client.post("/auth/password/forgot", json={"email": user.email})
        token = harness.email.last_reset_token()
        resp = client.post("/auth/password/reset", json={"token": token, "password": "abc"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "password_policy_violation"
        assert "At least 8 characters" in body["details"]["missing_requirements"]

    def test_unknown_token(self, client):
        resp = client.post("/auth/password/reset/verify", json={"token": "f" * 64})
        assert resp.status_code == 400
        assert resp.json()["code"] == "token_not_found"


# ── Sessions ──────────────────────────────────────────────────────────────────


class TestSessions:
    def test_list_marks_current(self, client, harness, user):
        _login(client, harness)
        harness.clock.advance(1)
        headers = _login(client, harness)

        resp = client.get("/auth/sessions", headers=headers)
        assert resp.status_code == 200
        sessions = resp.json()["sessions"]
        assert len(sessions) == 2
        assert [s["current"] for s in sessions] == [True, False]

    def test_revoke_one(self, client, harness, user):
        other = _login(client, harness)
        headers = _login(client, harness)
        sessions = client.get("/auth/sessions", headers=headers).json()["sessions"]
        target = next(s["id"] for s in sessions if not s["current"])

        resp = client.delete(f"/auth/sessions/{target}", headers=headers)
        assert resp.status_code == 200
        assert client.get("/auth/sessions", headers=other).status_code == 401
        assert client.get("/auth/sessions", headers=headers).status_code == 200

    def test_revoke_unknown(self, client, harness, user):
        headers = _login(client, harness)
        resp = client.delete("/auth/sessions/507f1f77bcf86cd799439011", headers=headers)
        assert resp.status_code == 404

    def test_revoke_all(self, client, harness, user):
        _login(client, harness)
        headers = _login(client, harness)
        resp = client.delete("/auth/sessions", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "revoked": 2}
        assert client.get("/auth/sessions", headers=headers).status_code == 401
