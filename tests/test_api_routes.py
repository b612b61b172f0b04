"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthService -> UserStore -> response model serialization, plus the
AuthError -> status code mapping and the rate limiter.

Coverage:
  - register: 201 with user + pair, 409 on duplicates, 422 on weak input
  - login: 200 + Cache-Control no-store, uniform 401 INVALID_CREDENTIALS
  - refresh: rotation, 403 on reuse, 401 on unknown token, 422 on bad shape
  - me / logout / logout-all: Bearer access token required
  - rate limit: 11th login within a minute is 429

Fixtures used (from conftest.py):
  - api_client: (client, service) -- TestClient with an isolated in-memory store
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from auth.service import AuthService

PASSWORD = "S3curePass"


def _register(client: TestClient, **overrides) -> dict:
    body = {"name": "Api User", "email": f"api-{uuid.uuid4().hex[:8]}@example.com", "password": PASSWORD}
    body.update(overrides)
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_user_and_tokens(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        data = _register(client, email="Reg.One@Example.com")
        assert data["user"]["email"] == "reg.one@example.com"
        assert data["user"]["role"] == "user"
        assert "password_hash" not in data["user"]
        assert data["tokens"]["token_type"] == "bearer"
        assert data["tokens"]["expires_in"] == 900
        assert len(data["tokens"]["refresh_token"]) == 64

    def test_register_duplicate_email_is_409(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        _register(client, email="dup@example.com")
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Dup Two", "email": "dup@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"

    def test_register_weak_password_is_422(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Weak", "email": "weak@example.com", "password": "password"},
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["detail"] == "password"

    def test_register_missing_body_field_is_422(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/register", json={"email": "x@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestLogin:
    def test_login_success(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        _register(client, email="login@example.com")
        resp = client.post("/api/v1/auth/login", json={"identifier": "login@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.json()["user"]["email"] == "login@example.com"

    def test_login_by_phone(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        _register(client, email=None, phone="+375337654321")
        resp = client.post("/api/v1/auth/login", json={"identifier": "+375337654321", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["auth_method"] == "phone"

    def test_wrong_password_and_unknown_user_look_the_same(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        _register(client, email="same@example.com")
        wrong = client.post("/api/v1/auth/login", json={"identifier": "same@example.com", "password": "Wr0ngPass"})
        unknown = client.post("/api/v1/auth/login", json={"identifier": "nobody@example.com", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_login_rate_limited(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        body = {"identifier": "flood@example.com", "password": PASSWORD}
        statuses = [client.post("/api/v1/auth/login", json=body).status_code for _ in range(11)]
        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429
        assert "Retry-After" in client.post("/api/v1/auth/login", json=body).headers


class TestRefresh:
    def test_refresh_rotates(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        tokens = _register(client)["tokens"]
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.json()["tokens"]["refresh_token"] != tokens["refresh_token"]

    def test_replay_is_403_and_revokes(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        data = _register(client)
        r1 = data["tokens"]["refresh_token"]
        client.post("/api/v1/auth/refresh", json={"refresh_token": r1})

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": r1})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "REFRESH_TOKEN_REUSE_DETECTED"
        assert service.count_active_tokens(data["user"]["id"]) == 0

    def test_unknown_token_is_401(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "a" * 64})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"

    def test_short_token_is_422(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "short"})
        assert resp.status_code == 422


class TestAuthenticated:
    def test_me_requires_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_ACCESS_TOKEN"

    def test_me_with_garbage_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer("not-a-jwt"))
        assert resp.status_code == 401

    def test_me_returns_profile(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        data = _register(client, name="Me Myself")
        resp = client.get("/api/v1/auth/me", headers=_bearer(data["tokens"]["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["id"] == data["user"]["id"]
        assert resp.json()["name"] == "Me Myself"

    def test_me_after_deactivation_is_401(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        data = _register(client)
        service.deactivate_user(data["user"]["id"])
        resp = client.get("/api/v1/auth/me", headers=_bearer(data["tokens"]["access_token"]))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "USER_ACCOUNT_INACTIVE"

    def test_logout_invalidates_refresh_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        tokens = _register(client)["tokens"]
        headers = _bearer(tokens["access_token"])
        body = {"refresh_token": tokens["refresh_token"]}

        first = client.post("/api/v1/auth/logout", json=body, headers=headers)
        second = client.post("/api/v1/auth/logout", json=body, headers=headers)
        assert first.status_code == second.status_code == 200
        assert (first.json()["revoked"], second.json()["revoked"]) == (1, 0)

    def test_logout_requires_access_token(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, _ = api_client
        tokens = _register(client)["tokens"]
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401

    def test_logout_all(self, api_client: tuple[TestClient, AuthService]) -> None:
        client, service = api_client
        data = _register(client, email="multi@example.com")
        client.post("/api/v1/auth/login", json={"identifier": "multi@example.com", "password": PASSWORD})

        resp = client.post("/api/v1/auth/logout-all", headers=_bearer(data["tokens"]["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["revoked"] == 2
        assert service.count_active_tokens(data["user"]["id"]) == 0
