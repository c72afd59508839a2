from __future__ import annotations

from unittest.mock import MagicMock

import psycopg
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tenant_auth.api import routes
from tenant_auth.domain.errors import TenantUnavailableError
from tenant_auth.domain.service import AuthService
from tenant_auth.repository import PostgresCredentialStore
from tenant_auth.security.rate_limiter import FixedWindowRateLimiter
from tenant_auth.tenancy import TenantRegistry

PASSWORD = "correcthorsebattery"


def _build_client(service: AuthService, max_requests: int = 50) -> TestClient:
    app = FastAPI()
    app.include_router(routes.router)
    app.state.auth_service = service
    app.state.request_gate = FixedWindowRateLimiter(max_requests=max_requests, window_seconds=60)
    return TestClient(app)


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    with _build_client(service) as client:
        yield client, service


def _register(client: TestClient, tenant: str = "tenant-1", email: str = "user@example.com", password: str = PASSWORD):
    return client.post(
        "/v1/auth/register",
        json={"email": email, "password": password},
        headers={"X-Tenant-ID": tenant},
    )


def _login(client: TestClient, tenant: str = "tenant-1", email: str = "user@example.com", password: str = PASSWORD):
    return client.post(
        "/v1/auth/login",
        json={"email": email, "password": password},
        headers={"X-Tenant-ID": tenant},
    )


def test_register_login_and_me(api_client):
    client, _ = api_client

    registered = _register(client, email="A@Example.com")
    assert registered.status_code == 201
    body = registered.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 3600
    assert body["tenant_id"] == "tenant-1"

    logged_in = _login(client, email="a@example.com")
    assert logged_in.status_code == 200

    me = client.get(
        "/v1/auth/me",
        headers={"X-Tenant-ID": "tenant-1", "Authorization": f"Bearer {logged_in.json()['access_token']}"},
    )
    assert me.status_code == 200
    profile = me.json()
    assert profile["email"] == "a@example.com"
    assert profile["tenant_id"] == "tenant-1"
    assert profile["locked"] is False
    assert "password_hash" not in profile
    assert "password" not in profile


def test_duplicate_registration_conflicts(api_client):
    client, _ = api_client
    assert _register(client).status_code == 201

    duplicate = _register(client, email="USER@example.com")
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "email already registered"

    assert _register(client, tenant="tenant-2").status_code == 201


def test_short_password_is_bad_request(api_client):
    client, _ = api_client
    response = _register(client, password="elevenchars")
    assert response.status_code == 400


def test_login_failures_are_indistinguishable(api_client):
    client, _ = api_client
    _register(client)

    wrong_password = _login(client, password="wrongpassword!!")
    unknown_email = _login(client, email="ghost@example.com")

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {"detail": "invalid credentials"}


def test_locked_account_is_forbidden(api_client):
    client, service = api_client
    token = _register(client).json()["access_token"]
    account_id = service.resolve_session("tenant-1", token).account_id
    service.set_locked("tenant-1", account_id, True)

    response = _login(client)
    assert response.status_code == 403
    assert response.json()["detail"] == "account is locked"


@pytest.mark.parametrize("authorization", [None, "", "Basic abc", "Bearer ", "Bearer not-a-token"])
def test_me_rejects_missing_or_invalid_token(api_client, authorization):
    client, _ = api_client
    headers = {"X-Tenant-ID": "tenant-1"}
    if authorization is not None:
        headers["Authorization"] = authorization

    response = client.get("/v1/auth/me", headers=headers)

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"].startswith("Bearer")


def test_me_rejects_token_from_another_tenant(api_client):
    client, _ = api_client
    token = _register(client, tenant="tenant-1").json()["access_token"]

    response = client.get("/v1/auth/me", headers={"X-Tenant-ID": "tenant-2", "Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_missing_tenant_header_is_rejected(api_client):
    client, _ = api_client
    response = client.post("/v1/auth/register", json={"email": "user@example.com", "password": PASSWORD})
    assert response.status_code == 422


def test_invalid_tenant_identifier_is_bad_request(api_client):
    client, _ = api_client
    assert _register(client, tenant="bad tenant!").status_code == 400


def test_register_respects_rate_limits(service):
    with _build_client(service, max_requests=2) as client:
        first = _register(client, email="one@example.com")
        second = _register(client, email="two@example.com")
        third = _register(client, email="three@example.com")

    assert first.status_code == 201
    assert second.status_code == 201
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"


def test_unreachable_tenant_storage_is_generic_503(hasher, issuer):
    def unreachable(tenant_id: str):
        raise TenantUnavailableError(tenant_id)

    service = AuthService(TenantRegistry(unreachable), hasher, issuer)
    with _build_client(service) as client:
        response = _login(client)

    assert response.status_code == 503
    assert response.json() == {"detail": "service unavailable"}


def test_storage_permission_error_is_generic_503(hasher, issuer):
    pool = MagicMock()
    cur = pool.connection.return_value.__enter__.return_value.cursor.return_value.__enter__.return_value
    cur.execute.side_effect = psycopg.errors.InsufficientPrivilege("permission denied for database auth")

    registry = TenantRegistry(lambda tenant_id: PostgresCredentialStore.open(pool, tenant_id, hasher=hasher))
    with _build_client(AuthService(registry, hasher, issuer)) as client:
        response = _register(client, tenant="acme")

    assert response.status_code == 503
    assert response.json() == {"detail": "service unavailable"}


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"email": "user@example.com"},
        {"password": PASSWORD},
        {"email": "not-an-email", "password": PASSWORD},
    ],
)
def test_missing_or_malformed_credentials_are_bad_request(api_client, body):
    client, _ = api_client
    for path in ("/v1/auth/register", "/v1/auth/login"):
        response = client.post(path, json=body, headers={"X-Tenant-ID": "tenant-1"})
        assert response.status_code == 400
