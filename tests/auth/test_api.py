"""Tests for the auth HTTP routes against the assembled app."""

import inspect
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from auth.config import AuthConfig
from clients.email_client import EmailGatewayError
from clients.identity_client import IdentityVerificationError, VerifiedIdentity
from main import create_app

STRONG_PASSWORD = "Aa1!aaaa"


def registration_body(**overrides):
    body = {
        "firstName": "Ann",
        "lastName": "Lee",
        "email": "ann@litverse-test.com",
        "password": STRONG_PASSWORD,
    }
    body.update(overrides)
    return body


class TestRegistrationRoutes:

    def test_send_otp(self, client, valkey):
        response = client.post("/register/send-otp", json=registration_body())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["sent"] is True
        assert body["data"]["expires_in"] == 600
        assert "otp" not in body["data"]
        assert valkey.get("registration:ann@litverse-test.com") is not None

    def test_verify_otp_creates_account(self, client, valkey, token_issuer):
        client.post("/register/send-otp", json=registration_body())
        code = valkey.get_json("registration:ann@litverse-test.com")["otp"]

        response = client.post("/register/verify-otp", json={"email": "ann@litverse-test.com", "otp": code})

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["user"]["email_verified"] is True
        assert data["created"] is True
        assert data["token_type"] == "Bearer"
        assert data["redirect_to"] == "/home"
        assert "password_hash" not in data["user"]
        assert token_issuer.verify(data["token"]).email == "ann@litverse-test.com"

    def test_weak_password(self, client):
        response = client.post("/register/send-otp", json=registration_body(password="short"))

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["field"] == "password"

    def test_duplicate_email(self, client, make_user):
        make_user(email="ann@litverse-test.com")

        response = client.post("/register/send-otp", json=registration_body())

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_unknown_registration(self, client):
        response = client.post("/register/verify-otp", json={"email": "nobody@litverse-test.com", "otp": "123456"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "OTP_EXPIRED"

    def test_wrong_code(self, client):
        with patch("auth.registration.generate_code", return_value="123456"):
            client.post("/register/send-otp", json=registration_body())

        response = client.post("/register/verify-otp", json={"email": "ann@litverse-test.com", "otp": "654321"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "OTP_MISMATCH"

    def test_missing_field_is_422(self, client):
        response = client.post("/register/send-otp", json={"email": "ann@litverse-test.com"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_rate_limited_sets_retry_after(self, client, config):
        for _ in range(config.rate_limit_attempts):
            client.post("/register/send-otp", json=registration_body())

        response = client.post("/register/send-otp", json=registration_body())

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0


class TestOtpDisclosure:

    def test_failed_delivery_hides_code(self, client, email_client):
        email_client.send_email.side_effect = EmailGatewayError("down")

        data = client.post("/register/send-otp", json=registration_body()).json()["data"]

        assert data["sent"] is False
        assert "otp" not in data
        assert data["message"] == "Code could not be delivered"


class TestInsecureOtpDisclosure:

    @pytest.fixture
    def config(self):
        return AuthConfig(insecure_otp_disclosure=True)

    def test_failed_delivery_discloses_code(self, client, email_client, valkey):
        email_client.send_email.side_effect = EmailGatewayError("down")

        data = client.post("/auth/email/send-otp", json={"email": "ann@litverse-test.com"}).json()["data"]

        assert data["sent"] is False
        assert data["otp"] == valkey.get("otp:email:ann@litverse-test.com")

    def test_delivered_code_not_disclosed(self, client):
        data = client.post("/auth/email/send-otp", json={"email": "ann@litverse-test.com"}).json()["data"]

        assert data["sent"] is True
        assert "otp" not in data


class TestLoginRoutes:

    def test_password_login(self, client, make_user):
        make_user(email="ann@litverse-test.com")

        response = client.post("/login", json={"email": "ann@litverse-test.com", "password": STRONG_PASSWORD})

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "ann@litverse-test.com"

    def test_bad_credentials(self, client, make_user):
        make_user(email="ann@litverse-test.com")

        response = client.post("/login", json={"email": "ann@litverse-test.com", "password": "Wrong1!pass"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_inactive_account(self, client, make_user, user_db):
        user = make_user(email="ann@litverse-test.com")
        user_db.update_user(user.id, {"is_active": False})

        response = client.post("/login", json={"email": "ann@litverse-test.com", "password": STRONG_PASSWORD})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ACCOUNT_INACTIVE"

    def test_email_otp_flow(self, client, valkey):
        sent = client.post("/auth/email/send-otp", json={"email": "new@litverse-test.com"})
        assert sent.status_code == 200

        code = valkey.get("otp:email:new@litverse-test.com")
        response = client.post("/auth/email/verify-otp", json={"email": "new@litverse-test.com", "otp": code})

        assert response.status_code == 200
        assert response.json()["data"]["created"] is True

    def test_mobile_otp_flow_accepts_phone_number_alias(self, client, valkey):
        sent = client.post("/auth/mobile/send-otp", json={"phoneNumber": "+1 555 123 4567"})
        assert sent.status_code == 200

        code = valkey.get("otp:phone:+15551234567")
        response = client.post("/auth/mobile/verify-otp", json={"phone": "+15551234567", "otp": code})

        assert response.status_code == 200
        assert response.json()["data"]["user"]["phone"] == "+15551234567"

    def test_repeated_wrong_codes_answer_429(self, client, config, valkey):
        client.post("/auth/email/send-otp", json={"email": "ann@litverse-test.com"})
        wrong = {"email": "ann@litverse-test.com", "otp": "xxxxxx"}
        for _ in range(config.otp_verify_attempts - 1):
            assert client.post("/auth/email/verify-otp", json=wrong).status_code == 400

        response = client.post("/auth/email/verify-otp", json=wrong)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0
        assert valkey.get("otp:email:ann@litverse-test.com") is None

    def test_invalid_phone(self, client):
        response = client.post("/auth/mobile/send-otp", json={"phone": "nope"})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "phone"


class TestFederatedRoutes:

    def test_google_login(self, client, google_verifier):
        google_verifier.verify_id_token.return_value = VerifiedIdentity(
            provider="google", provider_id="g-1", email="ann@litverse-test.com", given_name="Ann",
        )

        response = client.post("/auth/google", json={"credential": "id-token"})

        assert response.status_code == 200
        assert response.json()["data"]["user"]["google_id"] == "g-1"
        google_verifier.verify_id_token.assert_called_once_with("id-token")

    def test_facebook_login_accepts_access_token(self, client, facebook_verifier):
        facebook_verifier.verify_id_token.return_value = VerifiedIdentity(
            provider="facebook", provider_id="fb-1", email="ann@litverse-test.com",
        )

        response = client.post("/auth/facebook", json={"accessToken": "fb-token"})

        assert response.status_code == 200

    def test_rejected_token(self, client, google_verifier):
        google_verifier.verify_id_token.side_effect = IdentityVerificationError("bad audience")

        response = client.post("/auth/google", json={"token": "bad"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"

    def test_unknown_provider(self, client):
        response = client.post("/auth/myspace", json={"token": "x"})
        assert response.status_code == 401

    def test_providers_listed(self, client):
        response = client.get("/auth/providers")
        assert response.json()["data"]["providers"] == ["facebook", "google"]


class TestPasswordResetRoutes:

    def test_forgot_password_same_answer_for_unknown_email(self, client, make_user):
        make_user(email="ann@litverse-test.com")

        known = client.post("/forgot-password", json={"email": "ann@litverse-test.com"})
        unknown = client.post("/forgot-password", json={"email": "nobody@litverse-test.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json()["data"] == unknown.json()["data"]

    def test_reset_password(self, client, make_user, valkey):
        make_user(email="ann@litverse-test.com")
        client.post("/forgot-password", json={"email": "ann@litverse-test.com"})
        key = next(k for k in valkey.keys() if k.startswith("password_reset:"))
        token = key.removeprefix("password_reset:")

        response = client.post(f"/reset-password/{token}", json={"newPassword": "Bb2@bbbb"})

        assert response.status_code == 200
        login = client.post("/login", json={"email": "ann@litverse-test.com", "password": "Bb2@bbbb"})
        assert login.status_code == 200

    def test_reset_with_bad_token(self, client):
        response = client.post("/reset-password/nope", json={"newPassword": "Bb2@bbbb"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"


class TestProtectedRoutes:

    def test_home_requires_token(self, client):
        response = client.get("/home")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"

    def test_home_with_token(self, client, user_headers):
        response = client.get("/home", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "reader@litverse-test.com"

    def test_me_returns_profile(self, client, user_headers):
        response = client.get("/me", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["data"]["user"]["first_name"] == "Rea"

    def test_me_for_deleted_user(self, client, user_headers, user_db):
        user_db.users.clear()

        response = client.get("/me", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_me_with_admin_token_is_forbidden(self, client, admin_headers):
        response = client.get("/me", headers=admin_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "USER_REQUIRED"


class TestBlockingHandlers:

    def test_handlers_run_in_threadpool(self, app_services):
        app = create_app(app_services)

        endpoints = [route.endpoint for route in app.routes if isinstance(route, APIRoute)]

        assert endpoints
        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)

    def test_slow_logins_overlap(self, app_services, auth_service, make_user):
        """One slow login must not hold up the others."""
        make_user(email="ann@litverse-test.com")
        real_login = auth_service.login

        def slow_login(*args, **kwargs):
            time.sleep(0.5)
            return real_login(*args, **kwargs)

        body = {"email": "ann@litverse-test.com", "password": STRONG_PASSWORD}
        with patch.object(auth_service, "login", side_effect=slow_login):
            with TestClient(create_app(app_services)) as shared:
                started = time.monotonic()
                with ThreadPoolExecutor(max_workers=4) as pool:
                    results = list(pool.map(lambda _: shared.post("/login", json=body), range(4)))
                elapsed = time.monotonic() - started

        assert [r.status_code for r in results] == [200] * 4
        assert elapsed < 1.5
