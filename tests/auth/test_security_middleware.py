"""Tests for BearerAuthMiddleware - token validation and admin gate."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from auth.security_middleware import BearerAuthMiddleware, bearer_token
from utils.timezone import now_utc


@pytest.fixture
def app_with_middleware(token_issuer):
    """FastAPI app with only the bearer middleware."""
    app = FastAPI()
    app.add_middleware(BearerAuthMiddleware, token_issuer=token_issuer)

    @app.get("/home")
    async def home(request: Request):
        return {"subject": request.state.claims.subject}

    @app.get("/login")
    async def login():
        return {"public": True}

    @app.get("/auth/providers")
    async def providers():
        return {"public": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/admin/login")
    async def admin_login():
        return {"public": True}

    @app.get("/api/admin/users")
    async def admin_users(request: Request):
        return {"admin": request.state.claims.subject}

    return app


@pytest.fixture
def client(app_with_middleware):
    return TestClient(app_with_middleware)


class TestPublicPaths:

    @pytest.mark.parametrize("path", ["/login", "/auth/providers", "/health", "/api/admin/login"])
    def test_no_token_needed(self, client, path):
        assert client.get(path).status_code == 200


class TestProtectedPaths:

    def test_missing_token_rejected(self, client):
        response = client.get("/home")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "NOT_AUTHENTICATED"
        assert error["message"] == "Invalid or expired token"

    def test_invalid_token_rejected(self, client):
        response = client.get("/home", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"
        assert response.json()["error"]["message"] == "Invalid or expired token"

    def test_expired_token_rejected(self, client, token_issuer):
        with patch("auth.tokens.now_utc", return_value=now_utc() - timedelta(hours=2, seconds=1)):
            token = token_issuer.issue("user-1").token

        response = client.get("/home", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_valid_token_sets_claims(self, client, token_issuer):
        token = token_issuer.issue("user-1").token

        response = client.get("/home", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {"subject": "user-1"}

    def test_non_bearer_scheme_rejected(self, client, token_issuer):
        token = token_issuer.issue("user-1").token
        response = client.get("/home", headers={"Authorization": f"Basic {token}"})
        assert response.status_code == 401


class TestAdminGate:

    def test_user_token_forbidden(self, client, token_issuer):
        token = token_issuer.issue("user-1").token

        response = client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ADMIN_REQUIRED"

    def test_admin_token_allowed(self, client, token_issuer):
        token = token_issuer.issue("admin-1", role="admin").token

        response = client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {"admin": "admin-1"}

    def test_admin_path_without_token(self, client):
        assert client.get("/api/admin/users").status_code == 401


class TestBearerToken:

    def _request(self, header):
        headers = [(b"authorization", header.encode())] if header is not None else []
        return Request({"type": "http", "headers": headers})

    @pytest.mark.parametrize("header, expected", [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("Bearer   abc  ", "abc"),
        ("Bearer ", None),
        ("Token abc", None),
        ("", None),
        (None, None),
    ])
    def test_parsing(self, header, expected):
        assert bearer_token(self._request(header)) == expected
